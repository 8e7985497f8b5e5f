"""Business listeners and their topic bindings."""

from senik_admin.listeners.income_calculation import (
    INCOME_CALCULATED_GROUP_ID,
    LISTENER_NAME,
    SENIK_EVENTS_TOPIC,
    EventListener,
    IncomeCalculationListener,
    ListenerBinding,
    income_calculation_binding,
)

__all__ = [
    "EventListener",
    "IncomeCalculationListener",
    "ListenerBinding",
    "income_calculation_binding",
    "LISTENER_NAME",
    "SENIK_EVENTS_TOPIC",
    "INCOME_CALCULATED_GROUP_ID",
]
