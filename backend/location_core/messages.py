"""User-facing messages (English and Arabic) keyed by outcome code."""

SUPPORTED_LANGUAGES = ("en", "ar")

_MESSAGES: dict[str, dict[str, str]] = {
    "permission_denied": {
        "en": "Location permission was denied",
        "ar": "لم يتم منح إذن الوصول إلى الموقع",
    },
    "position_unavailable": {
        "en": "Please get your location first",
        "ar": "الرجاء تحديد موقعك أولاً",
    },
    "position_error": {
        "en": "Error getting your location",
        "ar": "حدث خطأ أثناء تحديد موقعك",
    },
    "capacity_exceeded": {
        "en": "You cannot save more than 3 locations. Please delete a location before adding a new one.",
        "ar": "لا يمكنك حفظ أكثر من 3 مواقع. يرجى حذف موقع قبل إضافة موقع جديد.",
    },
    "validation_error": {
        "en": "Please enter a location name",
        "ar": "يرجى إدخال اسم للموقع",
    },
    "save_success": {
        "en": "Location saved successfully",
        "ar": "تم حفظ الموقع بنجاح",
    },
    "save_failed": {
        "en": "Error saving location",
        "ar": "حدث خطأ أثناء حفظ الموقع",
    },
    "default_success": {
        "en": "Default location set successfully",
        "ar": "تم تعيين الموقع الافتراضي بنجاح",
    },
    "default_failed": {
        "en": "Error setting default location",
        "ar": "حدث خطأ أثناء تعيين الموقع الافتراضي",
    },
    "default_swap_incomplete": {
        "en": "Your previous default was cleared but the new one could not be saved. Please choose a default location.",
        "ar": "تم إلغاء الموقع الافتراضي السابق ولكن تعذر حفظ الموقع الجديد. يرجى اختيار موقع افتراضي.",
    },
    "delete_confirm": {
        "en": "Are you sure you want to delete this location?",
        "ar": "هل أنت متأكد أنك تريد حذف هذا الموقع؟",
    },
    "delete_success": {
        "en": "Location deleted successfully",
        "ar": "تم حذف الموقع بنجاح",
    },
    "delete_failed": {
        "en": "Error deleting location",
        "ar": "حدث خطأ أثناء حذف الموقع",
    },
    "repository_error": {
        "en": "Could not reach your saved locations. Please try again.",
        "ar": "تعذر الوصول إلى مواقعك المحفوظة. يرجى المحاولة مرة أخرى.",
    },
    "record_not_found": {
        "en": "Location not found",
        "ar": "الموقع غير موجود",
    },
    "malformed_record": {
        "en": "A saved location could not be read",
        "ar": "تعذرت قراءة أحد المواقع المحفوظة",
    },
    "choose_default": {
        "en": "Please choose a default location",
        "ar": "يرجى اختيار موقع افتراضي",
    },
    "address_loading": {
        "en": "Loading address...",
        "ar": "جاري تحميل العنوان...",
    },
    "session_closed": {
        "en": "This session has ended",
        "ar": "انتهت هذه الجلسة",
    },
    "invalid_state": {
        "en": "This action is not available right now",
        "ar": "هذا الإجراء غير متاح الآن",
    },
}


def normalize_language(language: str | None) -> str:
    """Return a supported language code; anything else falls back to English."""
    return language if language in SUPPORTED_LANGUAGES else "en"


def message_for(code: str, language: str | None = "en") -> str:
    """Localized message for an outcome code. Unknown codes fall back to the generic repository message."""
    entry = _MESSAGES.get(code) or _MESSAGES["repository_error"]
    return entry[normalize_language(language)]
