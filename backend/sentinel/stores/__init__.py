"""Data access for users, transactions and alert rules."""

from sentinel.stores.alert_rules import AlertRuleStore
from sentinel.stores.transactions import TransactionStore
from sentinel.stores.users import UserStore

__all__ = ["AlertRuleStore", "TransactionStore", "UserStore"]
