from .admin import ActivationReconciler, DecisionResult, GrantAdministration
from .gate import AccessGate, AccessResult, RetrievalResult
from .store import ConsentStore

__all__ = [
    'AccessGate', 'AccessResult', 'ActivationReconciler', 'ConsentStore', 'DecisionResult',
    'GrantAdministration', 'RetrievalResult',
]
