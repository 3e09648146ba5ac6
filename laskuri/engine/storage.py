"""JSON document store for customers, saved calculations and preferences.

Layout on disk::

    <APP_DATA_DIR>/storage_prefs.json   {"customStoragePath"?: str}
    <data dir>/customers.json           {"customers": [...]}
    <data dir>/calculations.json        {"calculations": [...]}

The data dir is ``customStoragePath`` when set, otherwise ``APP_DATA_DIR``.
Every collection operation is a whole-file read-modify-write; there is no
locking, so concurrent writers lose updates.
"""

from __future__ import annotations

import json
import math
import os
from pathlib import Path
from typing import Any, Callable, Dict, List, TypeVar

import aiofiles
import structlog

from ..config import Settings, settings as default_settings
from ..data_model import Customer, SavedCalculation
from ..errors import NotFoundError, StorageError

T = TypeVar("T", Customer, SavedCalculation)

CUSTOMERS_KEY = "customers"
CALCULATIONS_KEY = "calculations"
CUSTOM_PATH_KEY = "customStoragePath"

logger = structlog.get_logger()


def ensure_data_dir(folder: Path) -> None:
    if not folder.exists():
        folder.mkdir(parents=True, exist_ok=True)


def _sanitize_json_compat(value: Any):
    if isinstance(value, float):
        if math.isnan(value) or math.isinf(value):
            return None
        return value
    if isinstance(value, dict):
        return {key: _sanitize_json_compat(val) for key, val in value.items()}
    if isinstance(value, list):
        return [_sanitize_json_compat(item) for item in value]
    return value


async def read_document(path: Path) -> Any | None:
    """Return the parsed document, ``{}`` for an empty file, ``None`` if missing."""
    if not path.exists():
        return None
    async with aiofiles.open(path, "r", encoding="utf-8") as f:
        raw_text = (await f.read()).strip()
    if not raw_text:
        return {}
    return json.loads(raw_text)


async def write_document(path: Path, payload: Any) -> None:
    ensure_data_dir(path.parent)
    tmp_path = path.with_name(f"{path.name}.tmp")
    clean = _sanitize_json_compat(payload)
    text = json.dumps(clean, allow_nan=False, indent=2, ensure_ascii=False)
    async with aiofiles.open(tmp_path, "w", encoding="utf-8") as f:
        await f.write(text)
    os.replace(tmp_path, path)


def _find_index(items: List[T], item_id: str) -> int:
    for index, item in enumerate(items):
        if item.id == item_id:
            return index
    return -1


class JsonDocumentStore:
    def __init__(self, config: Settings | None = None):
        self.settings = config or default_settings
        self.logger = logger

    # -- preferences ---------------------------------------------------

    @property
    def prefs_path(self) -> Path:
        return Path(self.settings.APP_DATA_DIR) / self.settings.PREFS_FILENAME

    async def load_preferences(self) -> Dict[str, Any]:
        """Read preferences, degrading to ``{}`` on any failure."""
        try:
            prefs = await read_document(self.prefs_path)
            if prefs is None:
                await write_document(self.prefs_path, {})
                return {}
        except (OSError, ValueError) as exc:
            self.logger.error("preferences_load_failed", path=str(self.prefs_path), error=str(exc))
            return {}
        if not isinstance(prefs, dict):
            self.logger.error("preferences_malformed", path=str(self.prefs_path))
            return {}
        return prefs

    async def save_preferences(self, prefs: Dict[str, Any]) -> None:
        try:
            await write_document(self.prefs_path, prefs)
        except (OSError, TypeError, ValueError) as exc:
            self.logger.error("preferences_save_failed", error=str(exc))
            raise StorageError("save storage preferences", exc) from exc

    async def get_storage_location(self) -> str:
        prefs = await self.load_preferences()
        return str(prefs.get(CUSTOM_PATH_KEY) or "")

    async def set_storage_location(self, path: str) -> None:
        if not path or not Path(path).is_dir():
            self.logger.error("storage_location_missing", path=path)
            raise StorageError("set storage location", "The selected directory does not exist")
        prefs = await self.load_preferences()
        prefs[CUSTOM_PATH_KEY] = str(path)
        try:
            await self.save_preferences(prefs)
        except StorageError as exc:
            raise StorageError("set storage location", exc) from exc
        self.logger.info("storage_location_updated", path=str(path))

    # -- paths ---------------------------------------------------------

    async def data_dir(self) -> Path:
        custom = await self.get_storage_location()
        if custom:
            return Path(custom)
        return Path(self.settings.APP_DATA_DIR)

    async def customers_path(self) -> Path:
        return (await self.data_dir()) / self.settings.CUSTOMERS_FILENAME

    async def calculations_path(self) -> Path:
        return (await self.data_dir()) / self.settings.CALCULATIONS_FILENAME

    async def init_storage(self) -> None:
        """Create the data dir and empty collections if absent. Idempotent."""
        try:
            folder = await self.data_dir()
            ensure_data_dir(folder)
            for filename, key in (
                (self.settings.CUSTOMERS_FILENAME, CUSTOMERS_KEY),
                (self.settings.CALCULATIONS_FILENAME, CALCULATIONS_KEY),
            ):
                path = folder / filename
                if not path.exists():
                    await write_document(path, {key: []})
                    self.logger.info("collection_created", path=str(path))
        except OSError as exc:
            self.logger.error("storage_init_failed", error=str(exc))
            raise StorageError("initialize storage", exc) from exc

    # -- collections ---------------------------------------------------

    async def _load_collection(self, path: Path, key: str, decode: Callable[[Any], T]) -> List[T]:
        try:
            document = await read_document(path)
            if document is None:
                self.logger.info("collection_missing", path=str(path))
                await self.init_storage()
                return []
            if not isinstance(document, dict):
                raise ValueError(f"expected an object with a '{key}' list")
            rows = document.get(key) or []
            items = [decode(row) for row in rows]
        except StorageError:
            raise
        except (OSError, ValueError, TypeError, AttributeError) as exc:
            self.logger.error("collection_load_failed", collection=key, path=str(path), error=str(exc))
            raise StorageError(f"load {key}", exc) from exc
        self.logger.debug("collection_loaded", collection=key, count=len(items))
        return items

    async def _save_collection(self, path: Path, key: str, items: List[T]) -> None:
        try:
            await write_document(path, {key: [item.to_dict() for item in items]})
        except (OSError, TypeError, ValueError) as exc:
            self.logger.error("collection_save_failed", collection=key, path=str(path), error=str(exc))
            raise StorageError(f"save {key}", exc) from exc
        self.logger.debug("collection_saved", collection=key, count=len(items))

    async def load_customers(self) -> List[Customer]:
        return await self._load_collection(await self.customers_path(), CUSTOMERS_KEY, Customer.from_dict)

    async def save_customers(self, customers: List[Customer]) -> None:
        await self._save_collection(await self.customers_path(), CUSTOMERS_KEY, customers)

    async def load_calculations(self) -> List[SavedCalculation]:
        return await self._load_collection(
            await self.calculations_path(), CALCULATIONS_KEY, SavedCalculation.from_dict
        )

    async def save_calculations(self, calculations: List[SavedCalculation]) -> None:
        await self._save_collection(await self.calculations_path(), CALCULATIONS_KEY, calculations)

    # -- customers -----------------------------------------------------

    async def get_customer(self, customer_id: str) -> Customer | None:
        customers = await self.load_customers()
        index = _find_index(customers, customer_id)
        return customers[index] if index != -1 else None

    async def add_customer(self, customer: Customer) -> List[Customer]:
        customers = await self.load_customers()
        customers.append(customer)
        await self.save_customers(customers)
        return customers

    async def update_customer(self, customer: Customer) -> List[Customer]:
        customers = await self.load_customers()
        index = _find_index(customers, customer.id)
        if index == -1:
            raise NotFoundError("Customer", customer.id)
        customers[index] = customer
        await self.save_customers(customers)
        return customers

    async def delete_customer(self, customer_id: str) -> List[Customer]:
        customers = await self.load_customers()
        remaining = [c for c in customers if c.id != customer_id]
        if len(remaining) == len(customers):
            self.logger.warning("customer_delete_missing", customer_id=customer_id)
            return customers
        await self.save_customers(remaining)
        self.logger.info("customer_deleted", customer_id=customer_id, remaining=len(remaining))
        return remaining

    # -- calculations --------------------------------------------------

    async def get_calculation(self, calculation_id: str) -> SavedCalculation | None:
        calculations = await self.load_calculations()
        index = _find_index(calculations, calculation_id)
        return calculations[index] if index != -1 else None

    async def add_calculation(self, calculation: SavedCalculation) -> List[SavedCalculation]:
        calculations = await self.load_calculations()
        calculations.append(calculation)
        await self.save_calculations(calculations)
        return calculations

    async def update_calculation(self, calculation: SavedCalculation) -> List[SavedCalculation]:
        calculations = await self.load_calculations()
        index = _find_index(calculations, calculation.id)
        if index == -1:
            raise NotFoundError("Calculation", calculation.id)
        calculations[index] = calculation
        await self.save_calculations(calculations)
        return calculations

    async def delete_calculation(self, calculation_id: str) -> List[SavedCalculation]:
        calculations = await self.load_calculations()
        remaining = [c for c in calculations if c.id != calculation_id]
        if len(remaining) == len(calculations):
            self.logger.warning("calculation_delete_missing", calculation_id=calculation_id)
            return calculations
        await self.save_calculations(remaining)
        self.logger.info("calculation_deleted", calculation_id=calculation_id, remaining=len(remaining))
        return remaining
