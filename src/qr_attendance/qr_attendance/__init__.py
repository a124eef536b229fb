"""QR attendance package.

Organized by feature modules (sessions, attendance, cheating, ...) with thin
Flask controllers over service/repository layers. Spreadsheet mirroring runs
in the background through the keyed write queue in ``write_queue``.
"""
