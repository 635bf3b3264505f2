from .settings import BudgetSettings

__all__ = ["BudgetSettings"]
