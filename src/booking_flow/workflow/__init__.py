"""Booking workflow orchestration."""

from .compensation import CompensationPolicy, CompensationReport
from .polling import PollController, PollResult
from .selection import Selection, select_hotel, select_offer
from .state import ExecutionMode, WorkflowOutcome, WorkflowState
from .state_machine import BookingWorkflow

__all__ = [
    "BookingWorkflow",
    "CompensationPolicy",
    "CompensationReport",
    "ExecutionMode",
    "PollController",
    "PollResult",
    "Selection",
    "WorkflowOutcome",
    "WorkflowState",
    "select_hotel",
    "select_offer",
]
