from __future__ import annotations

import asyncio
import json
import logging
import threading
from typing import Optional, Sequence

import gspread
from google.oauth2.service_account import Credentials

from .client import (
    ATTENDANCE_HEADER,
    ATTENDANCE_WORKSHEET,
    VIOLATION_HEADER,
    VIOLATIONS_WORKSHEET,
    AttendanceRow,
    MirrorClient,
    SheetRef,
    ViolationRow,
    header_rows,
)

logger = logging.getLogger(__name__)

SCOPES = [
    "https://www.googleapis.com/auth/spreadsheets",
    "https://www.googleapis.com/auth/drive",
]

# Rows above the first data row: title + header.
_PREAMBLE_ROWS = 2


def violation_log_title(title: str, owner: str) -> str:
    # The service account sees every log, so the owner must be part of the name.
    return f"{title} - {owner}"


class GspreadMirrorClient(MirrorClient):
    """Google Sheets mirror backed by a service account.

    gspread is blocking, so every call runs in a worker thread; the event loop
    only awaits it.
    """

    def __init__(
        self,
        client: gspread.Client,
        *,
        share_with: Optional[str] = None,
        root_folder_id: Optional[str] = None,
    ):
        self._client = client
        self._share_with = share_with
        self._root_folder_id = root_folder_id
        self._lock = threading.Lock()

    @classmethod
    def from_settings(cls, settings) -> Optional["GspreadMirrorClient"]:
        creds_json = getattr(settings, "GOOGLE_CREDENTIALS_JSON", None)
        creds_file = getattr(settings, "GOOGLE_CREDENTIALS_FILE", None)
        if creds_json:
            creds = Credentials.from_service_account_info(json.loads(creds_json), scopes=SCOPES)
        elif creds_file:
            creds = Credentials.from_service_account_file(creds_file, scopes=SCOPES)
        else:
            logger.info("No Google credentials configured, spreadsheet mirroring disabled")
            return None
        return cls(
            gspread.authorize(creds),
            share_with=getattr(settings, "GOOGLE_SHARE_WITH", None),
            root_folder_id=getattr(settings, "GOOGLE_DRIVE_FOLDER_ID", None),
        )

    async def create_attendance_sheet(
        self,
        title: str,
        *,
        subject: str,
        session_type: str,
        folder_path: Sequence[str] = (),
    ) -> SheetRef:
        sheet = await asyncio.to_thread(self._create_attendance_sheet, title, subject, session_type)
        return SheetRef(sheet.spreadsheet_id, sheet.url, folder="/".join(folder_path) or None)

    async def append_attendance_row(self, spreadsheet_id: str, row: AttendanceRow) -> None:
        await asyncio.to_thread(self._append, spreadsheet_id, ATTENDANCE_WORKSHEET, row)

    async def ensure_violation_log(self, title: str, *, owner: str) -> str:
        return await asyncio.to_thread(self._ensure_violation_log, violation_log_title(title, owner))

    async def append_violation_row(self, spreadsheet_id: str, row: ViolationRow) -> None:
        await asyncio.to_thread(self._append, spreadsheet_id, VIOLATIONS_WORKSHEET, row)

    def _create_attendance_sheet(self, title: str, subject: str, session_type: str) -> SheetRef:
        spreadsheet = self._client.create(title, folder_id=self._root_folder_id)
        worksheet = spreadsheet.sheet1
        worksheet.update_title(ATTENDANCE_WORKSHEET)
        worksheet.update(
            values=header_rows(f"{subject} - {session_type.upper()}", ATTENDANCE_HEADER),
            range_name="A1:H2",
        )
        worksheet.freeze(rows=_PREAMBLE_ROWS)
        self._share(spreadsheet)
        logger.info("Created attendance sheet %s (%s)", title, spreadsheet.id)
        return SheetRef(spreadsheet_id=spreadsheet.id, url=spreadsheet.url)

    def _ensure_violation_log(self, title: str) -> str:
        # Guard open-or-create so two lanes cannot both create the log.
        with self._lock:
            try:
                return self._client.open(title).id
            except gspread.SpreadsheetNotFound:
                pass

            spreadsheet = self._client.create(title, folder_id=self._root_folder_id)
            worksheet = spreadsheet.sheet1
            worksheet.update_title(VIOLATIONS_WORKSHEET)
            worksheet.update(
                values=header_rows("Anti-Cheating Violation Log", VIOLATION_HEADER),
                range_name="A1:H2",
            )
            worksheet.freeze(rows=_PREAMBLE_ROWS)
            self._share(spreadsheet)
            logger.info("Created violation log %s (%s)", title, spreadsheet.id)
            return spreadsheet.id

    def _append(self, spreadsheet_id: str, worksheet_name: str, row) -> None:
        worksheet = self._client.open_by_key(spreadsheet_id).worksheet(worksheet_name)
        # Running number = data rows so far + 1; relies on per-sheet write ordering.
        try:
            row_number: object = max(len(worksheet.col_values(1)) - _PREAMBLE_ROWS, 0) + 1
        except gspread.exceptions.APIError:
            row_number = "?"
        worksheet.append_row(row.cells(row_number), value_input_option="RAW")

    def _share(self, spreadsheet) -> None:
        if self._share_with:
            spreadsheet.share(self._share_with, perm_type="user", role="writer", notify=False)
