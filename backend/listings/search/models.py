"""Pydantic models for service listing responses."""
from pydantic import BaseModel

from listings.data.geo import format_distance, is_within_service_area
from listings.search.service import AnnotatedService, price_display


class LocationModel(BaseModel):
    lat: float
    lng: float


class AuthorModel(BaseModel):
    id: str
    name: str
    username: str
    image: str | None = None
    bio: str | None = None


class ServiceResponse(BaseModel):
    id: str
    title: str
    description: str
    category: str
    pitch: str | None = None
    slug: str | None = None
    image: str | None = None
    created_at: str | None = None
    location: LocationModel | None = None
    price_range: str | None = None
    price_display: str | None = None
    contact_method: str | None = None
    contact_details: str | None = None
    service_radius_km: float | None = None
    views: int = 0
    is_active: bool = True
    featured: bool = False
    author: AuthorModel
    # Only present when the request carried a user location
    distance: float | None = None
    distance_display: str | None = None

    @classmethod
    def from_annotated(cls, item: AnnotatedService, *, include_distance: bool = False, views: int | None = None):
        s = item.service
        fields = dict(
            id=s.service_id,
            title=s.title,
            description=s.description,
            category=s.category,
            pitch=s.pitch,
            slug=s.slug,
            image=s.image,
            created_at=s.created_at,
            location=LocationModel(lat=s.location.lat, lng=s.location.lng) if s.location else None,
            price_range=s.price_range,
            price_display=price_display(s.price_range),
            contact_method=s.contact_method,
            contact_details=s.contact_details,
            service_radius_km=s.service_radius_km,
            views=s.views if views is None else views,
            is_active=s.is_active,
            featured=s.featured,
            author=AuthorModel(
                id=s.author.author_id,
                name=s.author.name,
                username=s.author.username,
                image=s.author.image,
                bio=s.author.bio,
            ),
        )
        if include_distance:
            fields["distance"] = item.distance_km
            if item.distance_km is not None:
                fields["distance_display"] = format_distance(item.distance_km)
        return cls(**fields)


class CategoryCount(BaseModel):
    category: str
    label: str
    count: int


class CategoriesResponse(BaseModel):
    categories: list[CategoryCount]


class ListingResponse(BaseModel):
    heading: str
    query: str | None = None
    category: str | None = None
    user_location: LocationModel | None = None
    total_count: int
    shown_count: int
    categories: list[CategoryCount]
    services: list[ServiceResponse]


class MapMarker(BaseModel):
    id: str
    title: str
    category: str
    lat: float
    lng: float
    price_display: str | None = None
    author_name: str
    in_area: bool

    @classmethod
    def from_annotated(cls, item: AnnotatedService):
        s = item.service
        return cls(
            id=s.service_id,
            title=s.title,
            category=s.category,
            lat=s.location.lat,
            lng=s.location.lng,
            price_display=price_display(s.price_range),
            author_name=s.author.name or "Service Provider",
            in_area=is_within_service_area(s.location),
        )


class MapResponse(BaseModel):
    center: LocationModel
    zoom: int
    markers: list[MapMarker]


class ViewCountResponse(BaseModel):
    service_id: str
    views: int
    counted: bool = False


class UserLocationResponse(BaseModel):
    location: LocationModel | None = None
