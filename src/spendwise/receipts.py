"""
Spendwise - Receipts

Receipt images are stored on local disk under receipts_dir/<user_id>/ and
tracked in the receipts table. A transaction points at its receipt through
transactions.receipt_id; recurring instances inherit the link from their
template. Uploads are scanned right away when a scanner is configured;
a scan failure leaves the receipt in 'failed' state and can be retried.

Author: Spendwise contributors
License: MIT
"""

import json
import logging
import shutil
import uuid
from pathlib import Path

from .constants import RECEIPT_MAX_SIZE, RECEIPT_STATUSES, RECEIPT_TYPES

logger = logging.getLogger(__name__)


class ReceiptMethods:
    """Receipt storage, linking and scanning for FinanceEngine."""

    def _user_receipt_dir(self, user_id):
        return Path(self.receipts_dir) / str(user_id)

    def _fetch_receipt(self, cursor, user_id, receipt_id):
        cursor.execute(
            "SELECT * FROM receipts WHERE receipt_id = ? AND user_id = ?",
            (receipt_id, user_id)
        )
        receipt = self._receipt_from_row(cursor.fetchone())
        if receipt is not None:
            cursor.execute(
                "SELECT transaction_id FROM transactions WHERE receipt_id = ? ORDER BY transaction_id",
                (receipt_id,)
            )
            receipt["transaction_ids"] = [row["transaction_id"] for row in cursor.fetchall()]
        return receipt

    @staticmethod
    def _check_upload(content, mime_type):
        if not content:
            raise ValueError("Receipt file is required")
        if mime_type not in RECEIPT_TYPES:
            raise ValueError(f"Invalid file type. Allowed: {', '.join(RECEIPT_TYPES)}")
        if len(content) > RECEIPT_MAX_SIZE:
            raise ValueError(f"File too large. Maximum size: {RECEIPT_MAX_SIZE // (1024 * 1024)}MB")

    def _check_transaction_owner(self, cursor, user_id, transaction_id):
        cursor.execute(
            "SELECT transaction_id FROM transactions WHERE transaction_id = ? AND user_id = ?",
            (transaction_id, user_id)
        )
        if cursor.fetchone() is None:
            raise ValueError(f"Unknown transaction: {transaction_id}")

    # =============================================================================
    # UPLOAD & SCAN
    # =============================================================================

    def upload_receipt(self, user_id, filename, content, mime_type, transaction_id=None):
        """
        Store a receipt image, optionally attach it to a transaction, and scan it.

        Args:
            user_id (int): Owner
            filename (str): Client-side file name, kept for display
            content (bytes): Image data
            mime_type (str): One of RECEIPT_TYPES
            transaction_id (int, optional): Transaction to attach the receipt to

        Returns:
            tuple: (True, receipt dict) or (False, error message)
        """
        conn, cursor = self._get_db_connection()
        path = None
        try:
            self._check_upload(content, mime_type)
            if transaction_id is not None:
                self._check_transaction_owner(cursor, user_id, transaction_id)

            directory = self._user_receipt_dir(user_id)
            directory.mkdir(parents=True, exist_ok=True)
            path = directory / f"receipt-{uuid.uuid4().hex}{RECEIPT_TYPES[mime_type]}"
            path.write_bytes(content)

            cursor.execute(
                "INSERT INTO receipts (user_id, original_filename, mime_type, file_size, storage_path, "
                "processing_status) VALUES (?, ?, ?, ?, ?, 'processing')",
                (user_id, filename or path.name, mime_type, len(content), str(path))
            )
            receipt_id = cursor.lastrowid
            if transaction_id is not None:
                cursor.execute(
                    "UPDATE transactions SET receipt_id = ?, updated_at = CURRENT_TIMESTAMP "
                    "WHERE transaction_id = ? AND user_id = ?",
                    (receipt_id, transaction_id, user_id)
                )
            conn.commit()
        except ValueError as e:
            conn.rollback()
            return False, str(e)
        except Exception as e:
            conn.rollback()
            if path is not None:
                path.unlink(missing_ok=True)
            logger.exception("[RECEIPT] Failed to store receipt for user %s", user_id)
            return False, f"An error occurred: {e}"
        finally:
            cursor.close()
            conn.close()

        logger.info("[RECEIPT] Stored receipt %s for user %s (%s bytes)", receipt_id, user_id, len(content))
        return True, self._scan_receipt(user_id, receipt_id)

    def _scan_receipt(self, user_id, receipt_id):
        """Run the scanner on a stored receipt and record the outcome."""
        conn, cursor = self._get_db_connection()
        try:
            receipt = self._fetch_receipt(cursor, user_id, receipt_id)
            ocr_data, error = None, None
            if self.scanner is None:
                error = "Receipt scanning is not configured."
            else:
                try:
                    ocr_data = self.scanner.scan(Path(receipt["storage_path"]).read_bytes(), receipt["mime_type"])
                except Exception as e:
                    error = str(e)

            if error:
                logger.warning("[RECEIPT] Scan of receipt %s failed: %s", receipt_id, error)
            cursor.execute(
                "UPDATE receipts SET ocr_data = ?, processing_status = ?, processing_error = ?, "
                "updated_at = CURRENT_TIMESTAMP WHERE receipt_id = ?",
                (
                    json.dumps(ocr_data) if ocr_data is not None else None,
                    "failed" if error else "completed",
                    error,
                    receipt_id,
                )
            )
            conn.commit()
            return self._fetch_receipt(cursor, user_id, receipt_id)
        finally:
            cursor.close()
            conn.close()

    def retry_receipt_scan(self, user_id, receipt_id):
        """Scan a receipt again. Receipts already scanned successfully are rejected."""
        conn, cursor = self._get_db_connection()
        try:
            receipt = self._fetch_receipt(cursor, user_id, receipt_id)
            if receipt is None:
                return False, "Receipt not found."
            if receipt["processing_status"] == "completed":
                return False, "Cannot rescan a receipt that was already processed successfully."
            cursor.execute(
                "UPDATE receipts SET processing_status = 'processing', processing_error = NULL, "
                "updated_at = CURRENT_TIMESTAMP WHERE receipt_id = ?",
                (receipt_id,)
            )
            conn.commit()
        finally:
            cursor.close()
            conn.close()
        return True, self._scan_receipt(user_id, receipt_id)

    # =============================================================================
    # QUERIES
    # =============================================================================

    def get_receipts(self, user_id, status=None):
        """
        List a user's receipts, newest first.

        Raises:
            ValueError: On an unknown processing status filter
        """
        if status and status not in RECEIPT_STATUSES:
            raise ValueError(f"Status must be one of: {', '.join(RECEIPT_STATUSES)}")
        conn, cursor = self._get_db_connection()
        try:
            sql = "SELECT receipt_id FROM receipts WHERE user_id = ?"
            params = [user_id]
            if status:
                sql += " AND processing_status = ?"
                params.append(status)
            cursor.execute(sql + " ORDER BY created_at DESC, receipt_id DESC", params)
            receipt_ids = [row["receipt_id"] for row in cursor.fetchall()]
            return [self._fetch_receipt(cursor, user_id, receipt_id) for receipt_id in receipt_ids]
        finally:
            cursor.close()
            conn.close()

    def get_receipt(self, user_id, receipt_id):
        conn, cursor = self._get_db_connection()
        try:
            return self._fetch_receipt(cursor, user_id, receipt_id)
        finally:
            cursor.close()
            conn.close()

    def get_receipt_file(self, user_id, receipt_id):
        """Return (Path, mime_type) of a stored receipt image, or None."""
        receipt = self.get_receipt(user_id, receipt_id)
        if receipt is None or not Path(receipt["storage_path"]).exists():
            return None
        return Path(receipt["storage_path"]), receipt["mime_type"]

    # =============================================================================
    # LINKING
    # =============================================================================

    def link_receipt(self, user_id, receipt_id, transaction_id):
        """
        Attach an unattached receipt to a transaction.

        Returns:
            tuple: (True, receipt dict) or (False, error message)
        """
        conn, cursor = self._get_db_connection()
        try:
            receipt = self._fetch_receipt(cursor, user_id, receipt_id)
            if receipt is None:
                return False, "Receipt not found."
            self._check_transaction_owner(cursor, user_id, transaction_id)
            if receipt["transaction_ids"]:
                return False, "Cannot link a receipt that is already attached to a transaction."

            cursor.execute(
                "UPDATE transactions SET receipt_id = ?, updated_at = CURRENT_TIMESTAMP "
                "WHERE transaction_id = ? AND user_id = ?",
                (receipt_id, transaction_id, user_id)
            )
            conn.commit()
            logger.info("[RECEIPT] Linked receipt %s to transaction %s", receipt_id, transaction_id)
            return True, self._fetch_receipt(cursor, user_id, receipt_id)
        except ValueError as e:
            conn.rollback()
            return False, str(e)
        finally:
            cursor.close()
            conn.close()

    def unlink_receipt(self, user_id, receipt_id):
        """Detach a receipt from every transaction that points at it."""
        conn, cursor = self._get_db_connection()
        try:
            receipt = self._fetch_receipt(cursor, user_id, receipt_id)
            if receipt is None:
                return False, "Receipt not found."
            if not receipt["transaction_ids"]:
                return False, "Cannot unlink a receipt that is not attached to any transaction."

            cursor.execute(
                "UPDATE transactions SET receipt_id = NULL, updated_at = CURRENT_TIMESTAMP "
                "WHERE receipt_id = ? AND user_id = ?",
                (receipt_id, user_id)
            )
            conn.commit()
            logger.info("[RECEIPT] Unlinked receipt %s", receipt_id)
            return True, self._fetch_receipt(cursor, user_id, receipt_id)
        finally:
            cursor.close()
            conn.close()

    def delete_receipt(self, user_id, receipt_id):
        """
        Delete a receipt and its stored image. Linked transactions keep existing
        with receipt_id cleared.

        Returns:
            tuple: (success bool, message str)
        """
        conn, cursor = self._get_db_connection()
        try:
            receipt = self._fetch_receipt(cursor, user_id, receipt_id)
            if receipt is None:
                return False, "Receipt not found."
            cursor.execute("DELETE FROM receipts WHERE receipt_id = ? AND user_id = ?", (receipt_id, user_id))
            conn.commit()
        except Exception as e:
            conn.rollback()
            logger.exception("[RECEIPT] Failed to delete receipt %s", receipt_id)
            return False, f"An error occurred: {e}"
        finally:
            cursor.close()
            conn.close()

        Path(receipt["storage_path"]).unlink(missing_ok=True)
        logger.info("[RECEIPT] Deleted receipt %s", receipt_id)
        return True, "Receipt deleted."

    def remove_receipt_files(self, user_id):
        """Delete every stored receipt image of a user (used when the account goes away)."""
        shutil.rmtree(self._user_receipt_dir(user_id), ignore_errors=True)
