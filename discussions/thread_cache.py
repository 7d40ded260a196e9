"""
Client Thread Cache

Holds one assembled discussion the way a presentation layer displays it and
reconciles it locally after each mutation instead of re-fetching the whole
tree. The tree itself is never modified: every change copies the nodes on
the path from the root to the target and shares all other subtrees.
"""

from dataclasses import replace
import logging

from django.db import InterfaceError, OperationalError

from core.structured_logging import discussion_logger

from .assembler import POLICY_PLACEHOLDER, TreeAssembler
from .exceptions import NotFound, ThreadStateError, ThreadValidationError, Unauthorized
from .services import ThreadMutationService

logger = logging.getLogger(__name__)

TRANSIENT_ERRORS = (OperationalError, InterfaceError)


def find_path(tree, node_id):
    """Nodes from the root down to ``node_id`` inclusive, or None when absent"""
    if tree is None:
        return None
    parents = {tree.id: None}
    stack = [tree]
    while stack:
        node = stack.pop()
        if node.id == node_id:
            path = []
            current = node
            while current is not None:
                path.append(current)
                current = parents[current.id]
            path.reverse()
            return path
        for child in reversed(node.children):
            parents[child.id] = node
            stack.append(child)
    return None


def find_node(tree, node_id):
    path = find_path(tree, node_id)
    return path[-1] if path else None


def _rebuild_path(path, replacement):
    """
    Copy every ancestor in ``path`` so that ``replacement`` takes the place of
    its last node. A replacement of None drops that node from its parent.
    """
    current = replacement
    for depth in range(len(path) - 2, -1, -1):
        parent = path[depth]
        old_child = path[depth + 1]
        if current is None:
            children = tuple(child for child in parent.children if child is not old_child)
            current = replace(parent, children=children, reply_count=parent.reply_count - 1)
        else:
            children = tuple(current if child is old_child else child for child in parent.children)
            current = replace(parent, children=children)
    return current


def apply_new_reply(tree, parent_id, new_node):
    """
    Prepend ``new_node`` to the children of ``parent_id``.

    Returns the same tree object when the parent is not in the tree; the
    caller has to reload the thread in that case.
    """
    path = find_path(tree, parent_id)
    if path is None:
        return tree
    parent = path[-1]
    updated = replace(
        parent,
        children=(new_node,) + parent.children,
        reply_count=parent.reply_count + 1,
    )
    return _rebuild_path(path, updated)


def apply_like_toggle(tree, node_id, result):
    path = find_path(tree, node_id)
    if path is None:
        return tree
    updated = replace(path[-1], like_count=result.like_count, viewer_liked=result.viewer_liked)
    return _rebuild_path(path, updated)


def apply_deletion(tree, node_id, placeholder=None):
    """
    Reflect a soft delete of a reply.

    Without a placeholder the node and its subtree disappear. With one, a
    node that still has replies becomes a placeholder shell; deleted
    ancestors left without any replies disappear as well. Deleting the root
    yields None.
    """
    path = find_path(tree, node_id)
    if path is None:
        return tree
    if len(path) == 1:
        return None

    target = path[-1]
    if placeholder is not None and target.children:
        shell = replace(
            target,
            body=placeholder,
            author_name='',
            like_count=0,
            viewer_liked=False,
            deleted=True,
        )
        return _rebuild_path(path, shell)

    # climb past deleted shells that would be left empty
    while len(path) > 2 and path[-2].deleted and path[-2].reply_count == 1:
        path = path[:-1]
    return _rebuild_path(path, None)


def recompute_total_count(tree):
    """Number of nodes in the whole thread, root included"""
    if tree is None:
        return 0
    total = 0
    stack = [tree]
    while stack:
        node = stack.pop()
        total += 1
        stack.extend(node.children)
    return total


class ThreadCache:
    """
    One displayed thread and its reconciliation state machine.

    States: unloaded -> loading -> loaded <-> mutating -> loaded; a failed load
    or an unrecoverable mutation moves to error, which only load() leaves.
    """

    UNLOADED = 'unloaded'
    LOADING = 'loading'
    LOADED = 'loaded'
    MUTATING = 'mutating'
    ERROR = 'error'

    def __init__(self, root_id, viewer=None, assembler=None, service=None):
        self.root_id = root_id
        self.viewer = viewer
        self.assembler = assembler or TreeAssembler()
        self.service = service or ThreadMutationService(viewer, assembler=self.assembler)
        self.state = self.UNLOADED
        self.tree = None
        self.total_count = 0
        self.needs_reload = False
        self.last_error = None

    @property
    def is_loaded(self):
        return self.state == self.LOADED

    def load(self):
        """Full re-assembly from the store; the only way out of the error state"""
        if self.state in (self.LOADING, self.MUTATING):
            raise ThreadStateError(f"Thread {self.root_id} is busy ({self.state})")

        self.state = self.LOADING
        try:
            tree = self.assembler.assemble(self.root_id, self.viewer)
        except Exception as e:
            self.state = self.ERROR
            self.last_error = e
            logger.warning(f"Loading thread {self.root_id} failed: {e}")
            raise

        self._set_tree(tree)
        self.needs_reload = False
        self.last_error = None
        self.state = self.LOADED
        return tree

    def add_reply(self, parent_id, body):
        """Post a reply and splice it into the cached tree"""
        new_node = self._mutate(self.service.add_node, parent_id, body)

        tree = apply_new_reply(self.tree, new_node.parent_id, new_node)
        if tree is self.tree:
            logger.info(f"Parent {parent_id} not in cached thread {self.root_id}; reload required")
            self.needs_reload = True
        else:
            self._set_tree(tree)
        self.state = self.LOADED
        return new_node

    def toggle_like(self, node_id):
        result = self._mutate(self.service.toggle_like, node_id)

        tree = apply_like_toggle(self.tree, int(node_id), result)
        if tree is self.tree:
            self.needs_reload = True
        else:
            self._set_tree(tree)
        self.state = self.LOADED
        return result

    def delete(self, node_id):
        """
        Soft-delete a node. Deleting the root empties the cache and returns it
        to the unloaded state.
        """
        self._mutate(self.service.soft_delete, node_id)

        node_id = int(node_id)
        if self.tree is not None and node_id == self.tree.id:
            self._set_tree(None)
            self.state = self.UNLOADED
            return

        placeholder = None
        if self.assembler.deleted_policy == POLICY_PLACEHOLDER:
            placeholder = self.assembler.placeholder
        tree = apply_deletion(self.tree, node_id, placeholder)
        if tree is self.tree:
            self.needs_reload = True
        else:
            self._set_tree(tree)
        self.state = self.LOADED

    def _mutate(self, operation, *args):
        """
        Run one mutation against the store; the cache is left untouched unless
        it succeeds.
        """
        if self.state == self.MUTATING:
            raise ThreadStateError('Another change to this thread is still in progress')
        if self.state != self.LOADED:
            raise ThreadStateError(f"Thread {self.root_id} is not loaded ({self.state})")

        self.state = self.MUTATING
        try:
            result = operation(*args)
        except NotFound as e:
            # the cached tree no longer matches the store
            self.state = self.ERROR
            self.last_error = e
            raise
        except (ThreadValidationError, Unauthorized) as e:
            self.state = self.LOADED
            self.last_error = e
            raise
        except TRANSIENT_ERRORS as e:
            logger.warning(f"Transient failure on thread {self.root_id}, retry allowed: {e}")
            self.state = self.LOADED
            self.last_error = e
            raise
        except Exception as e:
            self.state = self.ERROR
            self.last_error = e
            discussion_logger.error(
                "Thread mutation failed",
                exception=e,
                user=self.viewer,
                extra_data={'root_id': self.root_id, 'operation': getattr(operation, '__name__', str(operation))},
            )
            raise

        self.last_error = None
        return result

    def _set_tree(self, tree):
        self.tree = tree
        self.total_count = recompute_total_count(tree)
