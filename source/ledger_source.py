"""Reader for the project ledger spreadsheet."""
import logging
from typing import List
from urllib.parse import quote

from processor.models import CatalogLedgerRow
from source.google_api import GoogleApiClient

logger = logging.getLogger(__name__)


class LedgerSource:
    """
    Reads the project ledger from a Google Sheet.

    The sheet is expected to have a header row followed by columns:
    Code, Client, Project, Task, Default, From, To, Rate, Description,
    Comments, Budgeted hours, Company size, Categories.
    """

    BASE_URL = "https://sheets.googleapis.com/v4/spreadsheets"

    def __init__(self, client: GoogleApiClient, spreadsheet_id: str, sheet_name: str = 'Projects'):
        self.client = client
        self.spreadsheet_id = spreadsheet_id
        self.sheet_name = sheet_name

    def read_all_rows(self) -> List[CatalogLedgerRow]:
        """
        Read every ledger row, header excluded.

        Returns:
            List of CatalogLedgerRow in sheet order

        Raises:
            GoogleApiError: If the sheet cannot be read
        """
        url = f"{self.BASE_URL}/{self.spreadsheet_id}/values/{quote(self.sheet_name, safe='')}"
        payload = self.client.get_json(url, params={
            'valueRenderOption': 'UNFORMATTED_VALUE',
            'dateTimeRenderOption': 'SERIAL_NUMBER'
        })

        values = payload.get('values', [])[1:]
        rows = [
            CatalogLedgerRow.from_cells(cells)
            for cells in values
            if any(cell is not None and str(cell).strip() for cell in cells)
        ]

        logger.info(f"Read {len(rows)} rows from ledger sheet '{self.sheet_name}'")
        return rows
