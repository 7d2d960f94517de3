"""
Spendwise - User accounts

Registration and login with bcrypt password hashing. The email stored here is
the recipient for budget alert notifications.

Author: Spendwise contributors
License: MIT
"""

import logging

import bcrypt

logger = logging.getLogger(__name__)


class UserMethods:
    """Authentication methods for FinanceEngine."""

    def login_user(self, username, password):
        """
        Authenticate a user with username and password.

        Args:
            username (str): The username to authenticate
            password (str): Plain-text password to verify

        Returns:
            tuple: (user_data dict, message str). user_data holds user_id,
                   username and email. Returns (None, error_message) on failure.

        Example:
            user_data, msg = engine.login_user("alice", "mypassword")
            if user_data:
                print(f"Welcome, {user_data['username']}!")
        """
        conn, cursor = self._get_db_connection()
        try:
            cursor.execute(
                "SELECT user_id, username, email, password_hash FROM users WHERE username = ?",
                (username,)
            )
            user_data = self._row_to_dict(cursor.fetchone())
            if not user_data:
                return None, "Invalid username or password."

            if not bcrypt.checkpw(password.encode("utf-8"), user_data["password_hash"].encode("utf-8")):
                return None, "Invalid username or password."

            user_data.pop("password_hash")
            return user_data, "Login successful."
        except Exception as e:
            logger.exception("[AUTH] Login failed for %s", username)
            return None, f"An error occurred: {e}"
        finally:
            cursor.close()
            conn.close()

    def register_user(self, username, password, email=None):
        """
        Register a new user with a bcrypt-hashed password.

        Returns:
            tuple: (success bool, message str, user_id int or None)
        """
        if not username or not password:
            return False, "Username and password are required.", None

        conn, cursor = self._get_db_connection()
        try:
            cursor.execute("SELECT user_id FROM users WHERE username = ?", (username,))
            if cursor.fetchone():
                return False, "Username already exists.", None

            password_hash = bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt())
            cursor.execute(
                "INSERT INTO users (username, email, password_hash) VALUES (?, ?, ?)",
                (username, email, password_hash.decode("utf-8"))
            )
            new_user_id = cursor.lastrowid
            conn.commit()
            logger.info("[AUTH] Registered user %s (id=%s)", username, new_user_id)
            return True, "User registered successfully.", new_user_id
        except Exception as e:
            conn.rollback()
            logger.exception("[AUTH] Registration failed for %s", username)
            return False, f"An error occurred: {e}", None
        finally:
            cursor.close()
            conn.close()

    def get_user(self, user_id):
        """Return {user_id, username, email} or None."""
        conn, cursor = self._get_db_connection()
        try:
            cursor.execute(
                "SELECT user_id, username, email FROM users WHERE user_id = ?",
                (user_id,)
            )
            return self._row_to_dict(cursor.fetchone())
        finally:
            cursor.close()
            conn.close()

    def delete_user(self, user_id):
        """Delete a user, all of their data (cascading foreign keys) and their receipt files."""
        conn, cursor = self._get_db_connection()
        try:
            cursor.execute("DELETE FROM users WHERE user_id = ?", (user_id,))
            conn.commit()
            deleted = cursor.rowcount > 0
        except Exception:
            conn.rollback()
            logger.exception("[AUTH] Failed to delete user %s", user_id)
            return False
        finally:
            cursor.close()
            conn.close()

        self.remove_receipt_files(user_id)
        return deleted
