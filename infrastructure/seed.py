"""Demo catalog loaded at startup when SEED_DEMO_DATA is enabled"""
import logging
from decimal import Decimal
from typing import List

from domain.entities import Field
from domain.enums import FieldSize, FieldSurface
from domain.repositories import FieldRepository
from domain.value_objects import Location, Rating

logger = logging.getLogger(__name__)

DEMO_FIELDS = [
    {
        "name": "Green Valley Football Field",
        "description": "Professional grass field with excellent lighting, suited to competitive matches and training.",
        "location": {"address": "Khouribga Center, Morocco", "lat": 32.8811, "lng": -6.9063},
        "price_per_hour": "40",
        "amenities": ["Parking", "Changing Rooms", "Lighting", "Showers", "Security"],
        "lighting": True,
        "size": FieldSize.LARGE,
        "surface": FieldSurface.GRASS,
        "rating": (4.8, 24),
    },
    {
        "name": "Stadium Municipal",
        "description": "Municipal stadium with artificial turf, used for tournaments and large events.",
        "location": {"address": "Hay Mohammadi, Khouribga", "lat": 32.8711, "lng": -6.9163},
        "price_per_hour": "50",
        "amenities": ["Parking", "Changing Rooms", "Lighting", "Cafeteria", "Medical Room"],
        "lighting": True,
        "size": FieldSize.LARGE,
        "surface": FieldSurface.ARTIFICIAL,
        "rating": (4.5, 18),
    },
    {
        "name": "City Sports Complex",
        "description": "Several mid-size pitches at competitive prices in a family-friendly complex.",
        "location": {"address": "Hay Salam, Khouribga", "lat": 32.8611, "lng": -6.8963},
        "price_per_hour": "35",
        "amenities": ["Parking", "Changing Rooms", "Snack Bar"],
        "lighting": False,
        "size": FieldSize.MEDIUM,
        "surface": FieldSurface.ARTIFICIAL,
        "rating": (4.2, 12),
    },
    {
        "name": "Neighbourhood Five-a-Side",
        "description": "Small concrete court for quick five-a-side games.",
        "location": {"address": "Hay Al Qods, Khouribga", "lat": 32.8751, "lng": -6.9013},
        "price_per_hour": "20",
        "amenities": ["Lighting"],
        "lighting": True,
        "size": FieldSize.SMALL,
        "surface": FieldSurface.CONCRETE,
        "rating": (0, 0),
    },
]


async def seed_demo_fields(repository: FieldRepository, owner_id: str = "admin") -> List[Field]:
    """Load the demo catalog into an empty repository"""
    if await repository.find_all():
        logger.info("Field catalog not empty, skipping demo seed")
        return []

    seeded = []
    for data in DEMO_FIELDS:
        average, count = data["rating"]
        field = Field(
            name=data["name"],
            description=data["description"],
            location=Location(**data["location"]),
            price_per_hour=Decimal(data["price_per_hour"]),
            amenities=data["amenities"],
            lighting=data["lighting"],
            size=data["size"],
            surface=data["surface"],
            rating=Rating(average=average, count=count),
            owner_id=owner_id,
        )
        seeded.append(await repository.save(field))
    logger.info(f"Seeded {len(seeded)} demo fields")
    return seeded
