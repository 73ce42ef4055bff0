from core.assignment.refusals import RefusalPropagator, effective_claim_status
from core.assignment.state_machine import AssignmentStateMachine, BindResult, agreed_price

__all__ = [
    'RefusalPropagator',
    'effective_claim_status',
    'AssignmentStateMachine',
    'BindResult',
    'agreed_price',
]
