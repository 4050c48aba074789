"""Exception hierarchy for the rotation advisor."""
from __future__ import annotations


class AdvisorError(Exception):
    """Base class for all advisor errors."""


class ConfigError(AdvisorError, ValueError):
    """Invalid configuration, rejected at the call that introduced it."""


class RpcError(AdvisorError):
    """Every configured RPC endpoint for a chain failed."""


class RouteError(AdvisorError):
    """The route aggregator could not quote, submit or track a route."""


class ExecutionError(AdvisorError):
    """A plan could not be signed, broadcast or confirmed."""


class InvalidTransitionError(AdvisorError):
    """A state machine was asked to make a transition it does not allow."""
