"""
Repository for off-chain settlement balances and transfers.
"""

from __future__ import annotations

from repositories.base_repository import BaseRepository
from repositories.interfaces import ISettlementAccountRepository


class SettlementAccountRepository(BaseRepository, ISettlementAccountRepository):
    """
    Handles settlement_accounts and settlement_transactions.

    At most one transfer exists per (duel, account); crediting the same
    payout twice returns the original transfer instead of paying again.
    """

    def credit_payout_atomic(
        self, duel_id: int, account_id: str, amount: float, transaction_id: str, now: int
    ) -> dict:
        """
        Credit a duel payout to an account.

        Returns:
            Dict with transaction_id, amount, new_balance and replayed
            (True if this payout had already been credited)
        """
        if amount <= 0:
            raise ValueError("Payout amount must be positive.")

        with self.atomic_transaction() as conn:
            cursor = conn.cursor()

            cursor.execute(
                """
                SELECT transaction_id, amount FROM settlement_transactions
                WHERE duel_id = ? AND account_id = ?
                """,
                (duel_id, account_id),
            )
            existing = cursor.fetchone()
            if existing:
                return {
                    "transaction_id": existing["transaction_id"],
                    "amount": existing["amount"],
                    "new_balance": self._balance_internal(cursor, account_id),
                    "replayed": True,
                }

            cursor.execute(
                """
                INSERT INTO settlement_accounts (account_id, balance, updated_at)
                VALUES (?, ?, ?)
                ON CONFLICT(account_id) DO UPDATE SET
                    balance = balance + excluded.balance,
                    updated_at = excluded.updated_at
                """,
                (account_id, amount, now),
            )
            cursor.execute(
                """
                INSERT INTO settlement_transactions (
                    transaction_id, duel_id, account_id, amount, created_at
                )
                VALUES (?, ?, ?, ?, ?)
                """,
                (transaction_id, duel_id, account_id, amount, now),
            )

            return {
                "transaction_id": transaction_id,
                "amount": amount,
                "new_balance": self._balance_internal(cursor, account_id),
                "replayed": False,
            }

    def get_balance(self, account_id: str) -> float:
        with self.connection() as conn:
            return self._balance_internal(conn.cursor(), account_id)

    def _balance_internal(self, cursor, account_id: str) -> float:
        """Get balance using existing cursor (for use in transactions)."""
        cursor.execute(
            "SELECT balance FROM settlement_accounts WHERE account_id = ?",
            (account_id,),
        )
        row = cursor.fetchone()
        return row["balance"] if row else 0.0
