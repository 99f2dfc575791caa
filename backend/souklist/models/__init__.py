from souklist.models.user import User
from souklist.models.category import Category
from souklist.models.pricing_plan import PricingPlan
from souklist.models.listing import Listing
from souklist.models.payment import Payment
from souklist.models.listing_add_on import ListingAddOn
from souklist.models.payment_transition import PaymentTransition
from souklist.models.listing_status_transition import ListingStatusTransition
from souklist.models.audit_event import AuditEvent


__all__ = [
    "User",
    "Category",
    "PricingPlan",
    "Listing",
    "Payment",
    "ListingAddOn",
    "PaymentTransition",
    "ListingStatusTransition",
    "AuditEvent",
]
