from __future__ import annotations
"""Finite state machine utility for enforcing allowed status transitions.

Used by the order lifecycles (PurchaseOrder, PointOrder, DistributionOrder).
Usage:
    from milicard.utils.fsm import TransitionValidator
    PTO_FSM = TransitionValidator({
        'PENDING': {'CONFIRMED', 'CANCELLED'},
        'CONFIRMED': {'SHIPPING', 'CANCELLED'},
        'SHIPPING': {'DELIVERED'},
    })
    PTO_FSM.assert_can_transition(order.status, 'SHIPPING')

Raises 400 abort if invalid.
"""
from typing import Dict, Set
from flask import abort


class TransitionValidator:
    def __init__(self, graph: Dict[str, Set[str]], field_name: str = 'status'):
        self.graph = graph
        self.field_name = field_name

    def can_transition(self, current: str, target: str) -> bool:
        return target in self.graph.get(current, set())

    def assert_can_transition(self, current: str, target: str):
        if not self.can_transition(current, target):
            abort(400, description=f"Invalid {self.field_name} transition {current} -> {target}")
        return True

    def is_terminal(self, status: str) -> bool:
        return not self.graph.get(status)

__all__ = ['TransitionValidator']
