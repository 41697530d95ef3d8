"""
Inventory Catalog - read-only view of the inventory collaborator.

The dispatch workflow needs two things from inventory:
- Reverse lookup of a physical barcode to the SKU that owns it, when the
  scanned code is not itself one of the order's SKUs
- Display fields (name, images, marketplace URL) to enrich order items that
  arrive without them

The catalog is a snapshot: it is loaded once (from the order server, from a
list of records, or from an Excel/CSV inventory export) and never written.
"""
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional

import pandas as pd

from exceptions import ValidationError
from logger import get_logger
from models import InventoryItem

logger = get_logger(__name__)

# Column aliases accepted in inventory exports (matched case-insensitively)
COLUMN_ALIASES = {
    'sku': 'sku',
    'barcode': 'barcode',
    'name': 'name',
    'title': 'name',
    'item_name': 'name',
    'product_name': 'name',
    'imageurls': 'imageUrls',
    'image_urls': 'imageUrls',
    'images': 'imageUrls',
    'ebayurl': 'ebayUrl',
    'ebay_url': 'ebayUrl',
    'ebaysellername': 'ebaySellerName',
    'ebay_seller_name': 'ebaySellerName',
}


class InventoryCatalog:
    """
    Barcode and SKU lookup over an inventory snapshot.

    When several rows share a barcode (the same product stocked in two
    locations), the first row wins, matching the order server's own lookup.

    Attributes:
        items (List[InventoryItem]): All catalog rows, in load order
    """

    def __init__(self, items: Optional[Iterable[InventoryItem]] = None):
        self.items: List[InventoryItem] = list(items or [])
        self._by_barcode: Dict[str, InventoryItem] = {}
        self._by_sku: Dict[str, InventoryItem] = {}

        for item in self.items:
            if item.barcode:
                self._by_barcode.setdefault(item.barcode, item)
            self._by_sku.setdefault(item.sku, item)

        logger.debug(f"Inventory catalog built: {len(self.items)} rows, {len(self._by_barcode)} barcodes")

    def __len__(self) -> int:
        return len(self.items)

    def find_by_barcode(self, barcode: str) -> Optional[InventoryItem]:
        """Return the catalog row whose physical barcode equals barcode, if any."""
        if not barcode:
            return None
        return self._by_barcode.get(barcode)

    def find_by_sku(self, sku: str) -> Optional[InventoryItem]:
        return self._by_sku.get(sku)

    @classmethod
    def from_records(cls, records: Iterable[Dict[str, Any]]) -> 'InventoryCatalog':
        """
        Build a catalog from server records (GET /api/inventory payload).

        Rows that cannot be parsed are skipped with a warning rather than
        failing the whole snapshot.
        """
        items = []
        for record in records:
            try:
                items.append(InventoryItem.from_dict(record))
            except ValidationError as e:
                logger.warning(f"Skipping inventory row: {e}")
        return cls(items)

    @classmethod
    def from_dataframe(cls, df: pd.DataFrame) -> 'InventoryCatalog':
        """
        Build a catalog from a DataFrame of inventory rows.

        Column names are matched through COLUMN_ALIASES, so exports using
        "SKU", "Title" or "Image_URLs" headings load without a mapping step.

        Raises:
            ValidationError: If there is no SKU column
        """
        rename = {}
        for column in df.columns:
            key = str(column).strip().lower()
            if key in COLUMN_ALIASES:
                rename[column] = COLUMN_ALIASES[key]
        df = df.rename(columns=rename)

        if 'sku' not in df.columns:
            logger.error(f"Inventory data has no SKU column: {list(df.columns)}")
            raise ValidationError("The inventory data is missing required column: SKU")

        df = df[df['sku'].astype(str).str.strip() != '']
        known = [col for col in df.columns if col in set(COLUMN_ALIASES.values())]
        return cls.from_records(df[known].to_dict('records'))

    @classmethod
    def from_file(cls, file_path: str) -> 'InventoryCatalog':
        """
        Load a catalog from an .xlsx/.xls or .csv inventory export.

        Raises:
            ValidationError: If the file cannot be read, is empty or lacks a SKU column
        """
        path = Path(file_path)
        logger.info(f"Loading inventory from: {path}")

        try:
            if path.suffix.lower() == '.csv':
                df = pd.read_csv(path, dtype=str).fillna('')
            else:
                df = pd.read_excel(path, dtype=str).fillna('')
        except Exception as e:
            logger.error(f"Failed to read inventory file: {e}")
            raise ValidationError(f"Could not read the inventory file: {e}")

        if df.empty:
            logger.error("Loaded inventory file is empty")
            raise ValidationError("The inventory file is empty or contains no data.")

        catalog = cls.from_dataframe(df)
        logger.info(f"Inventory loaded: {len(catalog)} rows")
        return catalog
