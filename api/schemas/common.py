"""Common shared schemas: viewports and places."""

from pydantic import BaseModel, Field, model_validator

from transitsim.models import ViewportBounds


class PlaceModel(BaseModel):
    lng: float
    lat: float
    name: str


class ViewportRequest(BaseModel):
    """A settled map viewport reported by the client."""
    min_lng: float = Field(..., ge=-180, le=180)
    max_lng: float = Field(..., ge=-180, le=180)
    min_lat: float = Field(..., ge=-90, le=90)
    max_lat: float = Field(..., ge=-90, le=90)
    zoom: float = Field(0.0, ge=0, le=24)

    @model_validator(mode="after")
    def check_order(self):
        if self.min_lng > self.max_lng:
            raise ValueError("min_lng must not exceed max_lng")
        if self.min_lat > self.max_lat:
            raise ValueError("min_lat must not exceed max_lat")
        return self

    def to_bounds(self) -> ViewportBounds:
        return ViewportBounds(
            min_lng=self.min_lng,
            max_lng=self.max_lng,
            min_lat=self.min_lat,
            max_lat=self.max_lat,
            zoom=self.zoom,
        )
