"""Compute exceptions."""

from typing import Optional

from pyclouds.domain.base.exceptions import InfrastructureError, ValidationError
from pyclouds.domain.compute.models import NodeMetadata


class NoSuchElementError(ValidationError):
    """Raised when no hardware, image or location matches the requested criteria."""


class RunNodesError(InfrastructureError):
    """
    Raised when some nodes in a group could not be started.

    Nodes that did start are still reported so callers can use or clean them up.
    """

    def __init__(
        self,
        group: str,
        count: int,
        successful_nodes: list[NodeMetadata],
        execution_errors: dict[str, Exception],
        node_errors: Optional[dict[str, Exception]] = None,
    ) -> None:
        node_errors = node_errors or {}
        super().__init__(
            f"error running {count} nodes group({group}): "
            f"{len(execution_errors)} execution errors, {len(node_errors)} node errors",
            details={
                "group": group,
                "count": count,
                "successful": [n.id for n in successful_nodes],
            },
        )
        self.group = group
        self.successful_nodes = successful_nodes
        self.execution_errors = execution_errors
        self.node_errors = node_errors
