"""Portable compute operations over a provider adapter."""

import re
import secrets
from collections.abc import Callable
from concurrent.futures import Executor, Future, ThreadPoolExecutor
from typing import Optional

from pyclouds.application.compute.template_builder import TemplateBuilder
from pyclouds.config.schemas import ComputeConfig
from pyclouds.domain.base.exceptions import IllegalStateError, ValidationError
from pyclouds.domain.base.ports.compute_port import ComputeServiceAdapter
from pyclouds.domain.base.ports.logging_port import LoggingPort
from pyclouds.domain.compute.exceptions import RunNodesError
from pyclouds.domain.compute.models import (
    Hardware,
    Image,
    Location,
    NodeMetadata,
    NodeStatus,
    Template,
)
from pyclouds.infrastructure.adapters.logging_adapter import LoggingAdapter
from pyclouds.infrastructure.concurrency.provisioning import ProvisioningJob, ProvisioningManager
from pyclouds.infrastructure.predicates.retry import retry

GROUP_PATTERN = re.compile(r"^[a-z0-9][a-z0-9-]*$")
NAME_SUFFIX_WIDTH = 3
MAX_NAME_ATTEMPTS = 100

NodePredicate = Callable[[NodeMetadata], bool]


def in_group(group: str) -> NodePredicate:
    """Predicate matching nodes that belong to ``group``."""

    def _in_group(node: NodeMetadata) -> bool:
        return node.group == group

    return _in_group


def all_nodes(node: NodeMetadata) -> bool:
    return True


class ComputeService:
    """
    Create, inspect and destroy nodes through a ``ComputeServiceAdapter``.

    Node creation and destruction fan out on ``executor``; each node is then
    polled with ``retry`` using the poll settings in ``ComputeConfig``.
    """

    def __init__(
        self,
        adapter: ComputeServiceAdapter,
        executor: Optional[Executor] = None,
        config: Optional[ComputeConfig] = None,
        logger: Optional[LoggingPort] = None,
        provisioning_manager: Optional[ProvisioningManager] = None,
    ) -> None:
        self.adapter = adapter
        self.config = config or ComputeConfig()
        self._executor = executor
        self._provisioning_manager = provisioning_manager
        self._logger = logger or LoggingAdapter(__name__, provider=adapter.provider_id)

    def template_builder(self) -> TemplateBuilder:
        return TemplateBuilder(self.adapter)

    def list_hardware_profiles(self) -> list[Hardware]:
        return list(self.adapter.list_hardware_profiles())

    def list_images(self) -> list[Image]:
        return list(self.adapter.list_images())

    def list_assignable_locations(self) -> list[Location]:
        return list(self.adapter.list_locations())

    def list_nodes(self) -> list[NodeMetadata]:
        self._logger.debug(">> listing nodes")
        nodes = list(self.adapter.list_nodes())
        self._logger.debug("<< list(%d)", len(nodes))
        return nodes

    def list_nodes_detail_matching(self, predicate: NodePredicate) -> list[NodeMetadata]:
        return [node for node in self.list_nodes() if predicate(node)]

    def get_node_metadata(self, node_id: str) -> Optional[NodeMetadata]:
        if not node_id:
            raise ValidationError("node_id is required")
        return self.adapter.get_node(node_id)

    def create_nodes_in_group(
        self, group: str, count: int, template: Optional[Template] = None
    ) -> list[NodeMetadata]:
        """
        Create ``count`` nodes named ``<group>-<suffix>``.

        When the template asks to block until running, each node is polled
        until it reports RUNNING.

        :raises RunNodesError: if any node failed to be created or to start;
            the nodes that did start are attached to the error
        """
        self._validate_group(group)
        if count < 1:
            raise ValidationError("count must be positive")
        template = template or self.template_builder().build()

        names = self._unique_names(group, count)
        self._logger.info(
            ">> running %d node%s group(%s) location(%s) image(%s) hardware(%s)",
            count,
            "s" if count > 1 else "",
            group,
            template.location.id,
            template.image.id,
            template.hardware.id,
        )

        with self._executor_scope() as executor:
            futures: dict[str, Future[NodeMetadata]] = {
                name: executor.submit(self._create_and_wait, group, name, template)
                for name in names
            }
            good_nodes: list[NodeMetadata] = []
            execution_errors: dict[str, Exception] = {}
            node_errors: dict[str, Exception] = {}
            for name, future in futures.items():
                try:
                    good_nodes.append(future.result())
                except _NodeDidNotStart as e:
                    node_errors[e.node.id] = e.cause
                except Exception as e:
                    self._logger.error("<< error creating node %s: %s", name, e)
                    execution_errors[name] = e

        self._logger.info("<< running %d nodes group(%s)", len(good_nodes), group)
        if execution_errors or node_errors:
            raise RunNodesError(group, count, good_nodes, execution_errors, node_errors)
        return good_nodes

    def _create_and_wait(self, group: str, name: str, template: Template) -> NodeMetadata:
        self._logger.debug(">> adding node name(%s)", name)
        created = self.adapter.create_node_with_group_encoded_into_name(group, name, template)
        node = created.node
        if created.credentials is not None and node.credentials is None:
            node = node.model_copy(update={"credentials": created.credentials})
        self._logger.debug("<< adding node id(%s)", node.id)

        if not template.options.block_until_running:
            return node

        latest: dict[str, NodeMetadata] = {"node": node}

        def _running(node_id: str) -> bool:
            current = self.adapter.get_node(node_id)
            if current is None:
                raise IllegalStateError(f"node {node_id} disappeared while starting")
            latest["node"] = current
            if current.status == NodeStatus.ERROR:
                raise IllegalStateError(f"node {node_id} is in error state")
            return current.status == NodeStatus.RUNNING

        if not self._poll(_running)(node.id):
            current = latest["node"]
            raise _NodeDidNotStart(
                node,
                IllegalStateError(
                    f"node {node.id} did not reach RUNNING, status {current.status.value}",
                    details={"node_id": node.id, "status": current.status.value},
                ),
            )
        current = latest["node"]
        if current.credentials is None and node.credentials is not None:
            current = current.model_copy(update={"credentials": node.credentials})
        return current

    def destroy_node(self, node_id: str) -> Optional[NodeMetadata]:
        """
        Destroy a node and wait until it is gone or TERMINATED.

        Returns the node as it was before destruction, or None if it did not exist.
        """
        node = self.get_node_metadata(node_id)
        if node is None:
            return None
        self._logger.debug(">> destroying node(%s)", node_id)
        self.adapter.destroy_node(node_id)
        if not self._poll(self._terminated)(node_id):
            self._logger.warning("<< node(%s) not terminated within %ss", node_id, self.config.poll_timeout)
            return None
        self._logger.debug("<< destroyed node(%s)", node_id)
        return node

    def destroy_nodes_matching(self, predicate: NodePredicate) -> list[NodeMetadata]:
        targets = [
            n for n in self.list_nodes_detail_matching(predicate) if n.status != NodeStatus.TERMINATED
        ]
        self._logger.debug(">> destroying nodes matching(%d)", len(targets))
        destroyed: list[NodeMetadata] = []
        with self._executor_scope() as executor:
            futures = [executor.submit(self.destroy_node, n.id) for n in targets]
            for future in futures:
                node = future.result()
                if node is not None:
                    destroyed.append(node)
        self._logger.debug("<< destroyed(%d)", len(destroyed))
        return destroyed

    def reboot_node(self, node_id: str) -> None:
        self._logger.debug(">> rebooting node(%s)", node_id)
        self.adapter.reboot_node(node_id)
        self._await_status(node_id, NodeStatus.RUNNING)

    def suspend_node(self, node_id: str) -> None:
        self._logger.debug(">> suspending node(%s)", node_id)
        self.adapter.suspend_node(node_id)
        self._await_status(node_id, NodeStatus.SUSPENDED)

    def resume_node(self, node_id: str) -> None:
        self._logger.debug(">> resuming node(%s)", node_id)
        self.adapter.resume_node(node_id)
        self._await_status(node_id, NodeStatus.RUNNING)

    def reboot_nodes_matching(self, predicate: NodePredicate) -> None:
        self._for_each_matching(predicate, self.reboot_node)

    def suspend_nodes_matching(self, predicate: NodePredicate) -> None:
        self._for_each_matching(predicate, self.suspend_node)

    def resume_nodes_matching(self, predicate: NodePredicate) -> None:
        self._for_each_matching(predicate, self.resume_node)

    # group operations serialized through the provisioning manager

    def submit_create_nodes_in_group(
        self, group: str, count: int, template: Optional[Template] = None
    ) -> Optional["Future[list[NodeMetadata]]"]:
        """Queue a group creation behind earlier work for the same group."""
        manager = self._require_provisioning_manager()
        return manager.provision(
            ProvisioningJob(group, lambda: self.create_nodes_in_group(group, count, template))
        )

    def submit_destroy_group(self, group: str) -> Optional["Future[list[NodeMetadata]]"]:
        manager = self._require_provisioning_manager()
        return manager.provision(
            ProvisioningJob(group, lambda: self.destroy_nodes_matching(in_group(group)))
        )

    def _require_provisioning_manager(self) -> ProvisioningManager:
        if self._provisioning_manager is None:
            raise IllegalStateError("no provisioning manager configured for this compute service")
        return self._provisioning_manager

    # helpers

    def _for_each_matching(self, predicate: NodePredicate, action: Callable[[str], None]) -> None:
        targets = [
            n.id for n in self.list_nodes_detail_matching(predicate) if n.status != NodeStatus.TERMINATED
        ]
        with self._executor_scope() as executor:
            for future in [executor.submit(action, node_id) for node_id in targets]:
                future.result()

    def _await_status(self, node_id: str, status: NodeStatus) -> None:
        def _has_status(nid: str) -> bool:
            node = self.adapter.get_node(nid)
            if node is None:
                raise IllegalStateError(f"node {nid} not found")
            return node.status == status

        if not self._poll(_has_status)(node_id):
            raise IllegalStateError(
                f"node {node_id} did not reach {status.value} within {self.config.poll_timeout}s",
                details={"node_id": node_id, "status": status.value},
            )

    def _terminated(self, node_id: str) -> bool:
        node = self.adapter.get_node(node_id)
        return node is None or node.status == NodeStatus.TERMINATED

    def _poll(self, predicate: Callable[[str], bool]) -> Callable[[str], bool]:
        return retry(
            predicate,
            self.config.poll_timeout,
            self.config.poll_initial_period,
            self.config.poll_max_period,
        )

    def _unique_names(self, group: str, count: int) -> list[str]:
        existing = {n.name for n in self.adapter.list_nodes() if n.name}
        names: list[str] = []
        width = NAME_SUFFIX_WIDTH
        collisions = 0
        while len(names) < count:
            name = f"{group}-{secrets.token_hex((width + 1) // 2)[:width]}"
            if name not in existing and name not in names:
                names.append(name)
                continue
            collisions += 1
            if collisions >= MAX_NAME_ATTEMPTS:
                # suffixes of this width are mostly taken
                width += 1
                collisions = 0
        return names

    @staticmethod
    def _validate_group(group: str) -> None:
        if not group or not GROUP_PATTERN.match(group):
            raise ValidationError(
                f"group name {group!r} must be lowercase letters, digits or hyphens",
                details={"group": group},
            )

    def _executor_scope(self) -> "_ExecutorScope":
        return _ExecutorScope(self._executor)


class _NodeDidNotStart(Exception):
    def __init__(self, node: NodeMetadata, cause: Exception) -> None:
        super().__init__(str(cause))
        self.node = node
        self.cause = cause


class _ExecutorScope:
    """Use the shared executor, or a temporary pool shut down on exit."""

    def __init__(self, executor: Optional[Executor]) -> None:
        self._shared = executor
        self._owned: Optional[ThreadPoolExecutor] = None

    def __enter__(self) -> Executor:
        if self._shared is not None:
            return self._shared
        self._owned = ThreadPoolExecutor(thread_name_prefix="pyclouds-compute")
        return self._owned

    def __exit__(self, *exc_info: object) -> None:
        if self._owned is not None:
            self._owned.shutdown(wait=True)
            self._owned = None
