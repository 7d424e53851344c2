from app.models.experiment import ExperimentExposure
from app.models.listing import ListingInteraction, MarketListing
from app.models.signals import TagConversionMetric, TagUsage

__all__ = [
    "MarketListing",
    "ListingInteraction",
    "TagUsage",
    "TagConversionMetric",
    "ExperimentExposure",
]
