"""
Printify Product Mapping

Static lookup from store SKU (or variant name) to the Printify
(product_id, variant_id) pair. Loaded once per process from either:
- a CSV file (PRINTIFY_PRODUCT_MAPPING_CSV), columns sku,productId,variantId
- a JSON object (PRINTIFY_PRODUCT_MAPPING)

The CSV source takes precedence. Duplicate keys are a configuration error.
"""
import csv
import io
import json
import logging
import math
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Iterator, Mapping, Optional, Tuple

from printbridge.config import Settings
from printbridge.core.exceptions import ConfigurationError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ProductMappingEntry:
    """Printify catalog identifiers for one store SKU."""
    product_id: int
    variant_id: int


class ProductMapping(Mapping[str, ProductMappingEntry]):
    """
    Immutable SKU -> ProductMappingEntry table.

    Usage:
        mapping = ProductMapping.from_csv_text("sku,productId,variantId\\nTEE-M,1,2")
        entry = mapping.resolve(["TEE-M", "T-Shirt / M"])
    """

    def __init__(self, entries: Optional[Dict[str, ProductMappingEntry]] = None):
        self._entries: Dict[str, ProductMappingEntry] = dict(entries or {})

    def __getitem__(self, key: str) -> ProductMappingEntry:
        return self._entries[key]

    def __iter__(self) -> Iterator[str]:
        return iter(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def __repr__(self) -> str:
        return f"ProductMapping({len(self)} entries)"

    def resolve(self, keys) -> Optional[Tuple[str, ProductMappingEntry]]:
        """Return the first (key, entry) found among keys, in order."""
        for key in keys:
            entry = self._entries.get(key)
            if entry is not None:
                return key, entry
        return None

    # ==================== LOADERS ====================

    @classmethod
    def from_csv_text(cls, content: str, source: str = "<csv>") -> "ProductMapping":
        """
        Parse sku,productId,variantId rows.

        A first row mentioning sku, product and variant is treated as header.
        """
        entries: Dict[str, ProductMappingEntry] = {}
        reader = csv.reader(io.StringIO(content))

        for line_number, row in enumerate(reader, start=1):
            cells = [cell.strip() for cell in row]
            if not any(cells):
                continue

            if line_number == 1 and _looks_like_header(cells):
                continue

            if len(cells) < 3:
                raise ConfigurationError(
                    f"Invalid CSV format in {source} at line {line_number}: expected sku,productId,variantId"
                )

            sku, product_id_str, variant_id_str = cells[:3]
            if not sku:
                raise ConfigurationError(f"CSV line {line_number} in {source}: missing sku")

            product_id = _parse_id(product_id_str)
            variant_id = _parse_id(variant_id_str)
            if product_id is None or variant_id is None:
                raise ConfigurationError(
                    f"CSV line {line_number} in {source}: productId and variantId must be numbers"
                )

            if sku in entries:
                raise ConfigurationError(
                    f"CSV line {line_number} in {source}: duplicate sku '{sku}'"
                )
            entries[sku] = ProductMappingEntry(product_id=product_id, variant_id=variant_id)

        return cls(entries)

    @classmethod
    def from_csv_file(cls, csv_path: str) -> "ProductMapping":
        path = Path(csv_path)
        if not path.is_absolute():
            path = Path.cwd() / path
        if not path.exists():
            raise ConfigurationError(f"PRINTIFY_PRODUCT_MAPPING_CSV not found at path: {path}")

        return cls.from_csv_text(path.read_text(encoding="utf-8"), source=str(path))

    @classmethod
    def from_json_text(cls, raw: str) -> "ProductMapping":
        """
        Parse {"SKU": {"productId": 1, "variantId": 2}}.

        Entries without numeric productId/variantId are skipped.
        """
        try:
            pairs = json.loads(raw or "{}", object_pairs_hook=_reject_duplicate_keys)
        except DuplicateKeyError as e:
            raise ConfigurationError(f"PRINTIFY_PRODUCT_MAPPING has duplicate sku '{e.key}'") from e
        except json.JSONDecodeError as e:
            raise ConfigurationError(f"PRINTIFY_PRODUCT_MAPPING must be valid JSON. {e}") from e

        entries: Dict[str, ProductMappingEntry] = {}
        if not isinstance(pairs, dict):
            return cls(entries)

        for key, value in pairs.items():
            if not isinstance(value, dict):
                logger.warning(f"Skipping mapping entry '{key}': expected an object")
                continue
            product_id = value.get("productId")
            variant_id = value.get("variantId")
            if not _is_number(product_id) or not _is_number(variant_id):
                logger.warning(f"Skipping mapping entry '{key}': productId/variantId must be numbers")
                continue
            entries[key] = ProductMappingEntry(product_id=int(product_id), variant_id=int(variant_id))

        return cls(entries)


class DuplicateKeyError(ValueError):
    def __init__(self, key: str):
        self.key = key
        super().__init__(f"duplicate key: {key}")


def _reject_duplicate_keys(pairs):
    result = {}
    for key, value in pairs:
        if key in result:
            raise DuplicateKeyError(key)
        result[key] = value
    return result


def _looks_like_header(cells) -> bool:
    joined = ",".join(cells).lower()
    return "sku" in joined and "product" in joined and "variant" in joined


def _parse_id(value: str) -> Optional[int]:
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(number):
        return None
    return int(number)


def _is_number(value) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool) and math.isfinite(value)


def load_product_mapping(settings: Settings) -> ProductMapping:
    """
    Load the mapping configured in settings.

    Raises ConfigurationError if Printify is enabled and the mapping is empty.
    """
    if settings.PRINTIFY_PRODUCT_MAPPING_CSV:
        mapping = ProductMapping.from_csv_file(settings.PRINTIFY_PRODUCT_MAPPING_CSV)
        source = settings.PRINTIFY_PRODUCT_MAPPING_CSV
    else:
        mapping = ProductMapping.from_json_text(settings.PRINTIFY_PRODUCT_MAPPING)
        source = "PRINTIFY_PRODUCT_MAPPING"

    if settings.printify_enabled and len(mapping) == 0:
        raise ConfigurationError(
            "Printify product mapping is required when Printify integration is enabled. "
            "Provide PRINTIFY_PRODUCT_MAPPING_CSV or PRINTIFY_PRODUCT_MAPPING."
        )

    logger.info(f"Loaded {len(mapping)} Printify product mappings from {source}")
    return mapping
