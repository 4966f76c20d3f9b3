"""Agent module: the search loop, sequence execution and shrinking."""

from quickrest.agent.explorer import Explorer
from quickrest.agent.replay import ReplayCase, ReplayOutcome, replay
from quickrest.agent.runner import RunOutcome, SequenceRunner
from quickrest.agent.shrinker import Shrinker, ShrinkResult, removal_order

__all__ = [
    "Explorer",
    "ReplayCase",
    "ReplayOutcome",
    "RunOutcome",
    "SequenceRunner",
    "ShrinkResult",
    "Shrinker",
    "removal_order",
    "replay",
]
