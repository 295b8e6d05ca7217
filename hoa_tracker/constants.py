HOAS_COLLECTION = "hoas"
USERS_COLLECTION = "users"
VIOLATIONS_COLLECTION = "violations"

ROLE_HOA_ADMIN = "hoa_admin"
ROLE_SUPER_ADMIN = "super_admin"
USER_ROLES = (ROLE_HOA_ADMIN, ROLE_SUPER_ADMIN)

SUBSCRIPTION_STATUSES = ("trial", "active", "inactive", "pending")

VIOLATION_STATUSES = ("pending", "under_review", "resolved", "dismissed")

# Applied verbatim when an onboarding form supplies no categories.
DEFAULT_VIOLATION_TYPES = [
    "Landscaping/Yard Maintenance",
    "Architectural Violations",
    "Parking Violations",
    "Pet Policy Violations",
    "Noise Complaints",
    "Trash/Recycling Issues",
    "Pool/Amenity Violations",
    "Commercial Activity",
]

DEFAULT_PRIMARY_COLOR = "#3B82F6"

SUBSCRIPTION_EMAIL_TYPES = ("welcome", "payment_failed", "subscription_cancelled")

MAX_PHOTOS_PER_VIOLATION = 10
ALLOWED_PHOTO_TYPES = {"image/png", "image/jpeg", "image/gif", "image/webp", "image/heic"}
