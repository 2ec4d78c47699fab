from heliumai.preferences.resolver import (
    PreferenceResolver,
    Resolution,
    Resolved,
    Unresolved,
    best_model_for_mode,
)
from heliumai.preferences.store import (
    InMemoryPreferenceStore,
    JsonFilePreferenceStore,
    PreferenceRecord,
    Preferences,
    PreferenceStore,
)

__all__ = [
    "InMemoryPreferenceStore",
    "JsonFilePreferenceStore",
    "PreferenceRecord",
    "PreferenceResolver",
    "PreferenceStore",
    "Preferences",
    "Resolution",
    "Resolved",
    "Unresolved",
    "best_model_for_mode",
]
