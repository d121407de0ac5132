"""Settings endpoints."""
from typing import Any

from fastapi import APIRouter, Depends

from ..dependencies import get_settings_store
from ..schemas import ExcludedLibrariesUpdate, SettingModel, SettingUpdate, TmdbApiKeyModel
from ..stores.settings_store import EXCLUDED_PLEX_LIBRARIES, TMDB_API_KEY, SettingsStore

router = APIRouter(prefix="/settings", tags=["settings"])


@router.get("", response_model=dict[str, Any])
def read_settings(store: SettingsStore = Depends(get_settings_store)) -> dict[str, Any]:
    """Return every stored setting as one object."""

    return store.all()


@router.get("/plex/excluded-libraries", response_model=ExcludedLibrariesUpdate)
def read_excluded_libraries(
    store: SettingsStore = Depends(get_settings_store),
) -> ExcludedLibrariesUpdate:
    return ExcludedLibrariesUpdate(libraries=store.excluded_plex_libraries())


@router.put("/plex/excluded-libraries", response_model=ExcludedLibrariesUpdate)
def update_excluded_libraries(
    update: ExcludedLibrariesUpdate,
    store: SettingsStore = Depends(get_settings_store),
) -> ExcludedLibrariesUpdate:
    """Replace the Plex libraries hidden from the compare report."""

    store.set(EXCLUDED_PLEX_LIBRARIES, update.libraries)
    return update


@router.get("/tmdb/api-key", response_model=TmdbApiKeyModel)
def read_tmdb_api_key(store: SettingsStore = Depends(get_settings_store)) -> TmdbApiKeyModel:
    return TmdbApiKeyModel(api_key=store.tmdb_api_key() or "")


@router.put("/tmdb/api-key", response_model=TmdbApiKeyModel)
def update_tmdb_api_key(
    update: TmdbApiKeyModel,
    store: SettingsStore = Depends(get_settings_store),
) -> TmdbApiKeyModel:
    store.set(TMDB_API_KEY, update.api_key.strip())
    return TmdbApiKeyModel(api_key=update.api_key.strip())


@router.get("/{key}", response_model=SettingModel)
def read_setting(key: str, store: SettingsStore = Depends(get_settings_store)) -> SettingModel:
    return SettingModel(key=key, value=store.get(key))


@router.put("/{key}", response_model=SettingModel)
def update_setting(
    key: str,
    update: SettingUpdate,
    store: SettingsStore = Depends(get_settings_store),
) -> SettingModel:
    """Store an arbitrary JSON value under ``key``."""

    return SettingModel(key=key, value=store.set(key, update.value))
