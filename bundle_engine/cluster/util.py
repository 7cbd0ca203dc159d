"""Helpers for reconciling objects in the cluster."""

from collections.abc import Callable
import copy
from enum import StrEnum
import logging

from bundle_engine.exceptions import AlreadyExistsError, ObjectNotFoundError
from bundle_engine.manifest import Pod

from .cluster import Cluster

_LOGGER = logging.getLogger(__name__)


class OperationResult(StrEnum):
    """What `create_or_recreate` did to the object."""

    NONE = "unchanged"
    CREATED = "created"
    UPDATED = "updated"


def _desired_state(pod: Pod) -> tuple:
    return (pod.labels, pod.owner_references, pod.spec)


async def create_or_recreate(
    cluster: Cluster, pod: Pod, mutate: Callable[[Pod], None]
) -> tuple[Pod, OperationResult]:
    """Make the Pod named by `pod` match the state applied by `mutate`.

    A missing Pod is created. An existing Pod is left alone when `mutate`
    does not change it, and otherwise deleted and created again since a Pod
    spec can't be updated in place. Returns the Pod as known to the cluster.

    Concurrent callers converge on a single Pod: losing a create race to
    another caller applying the same state counts as having created it.
    """
    try:
        existing = await cluster.get_pod(pod.namespace, pod.name)
    except ObjectNotFoundError:
        mutate(pod)
        return await _create(cluster, pod, OperationResult.CREATED)

    desired = copy.deepcopy(existing)
    mutate(desired)
    if _desired_state(desired) == _desired_state(existing):
        return existing, OperationResult.NONE

    _LOGGER.info("Recreating %s with updated spec", existing.resource_id)
    try:
        await cluster.delete_pod(existing.namespace, existing.name)
    except ObjectNotFoundError:
        _LOGGER.debug("%s already deleted", existing.resource_id)
    fresh = Pod(
        name=desired.name,
        namespace=desired.namespace,
        labels=desired.labels,
        owner_references=desired.owner_references,
        spec=desired.spec,
    )
    return await _create(cluster, fresh, OperationResult.UPDATED)


async def _create(
    cluster: Cluster, pod: Pod, result: OperationResult
) -> tuple[Pod, OperationResult]:
    try:
        created = await cluster.create_pod(pod)
    except AlreadyExistsError:
        _LOGGER.debug("%s was created concurrently", pod.resource_id)
        return pod, result
    _LOGGER.debug("Pod %s %s", created.resource_id, result)
    return created, result
