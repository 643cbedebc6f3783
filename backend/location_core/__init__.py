# Location core: records, invariant manager, address enrichment, session controller, store
from location_core.enrichment import AddressEnrichmentService
from location_core.invariants import DefaultInvariantManager, DeletePolicy, RepairPolicy
from location_core.records import SavedLocation, SavedLocationDraft
from location_core.session import LocationSessionController

__all__ = [
    "AddressEnrichmentService",
    "DefaultInvariantManager",
    "DeletePolicy",
    "RepairPolicy",
    "SavedLocation",
    "SavedLocationDraft",
    "LocationSessionController",
]
