from dataclasses import dataclass, field
from typing import Optional

from randomized_bst import GenericRandomizedBst, RbstNode

# with a scripted draw of 0.0 every subtree on the way down gets rebuilt, with 0.99 none ever is
ALWAYS_REBUILD = 0.0
NEVER_REBUILD = 0.99


class ScriptedRandom:
    """Random source that hands out the given draws in turn, repeating the last one forever, and always picks the
    lowest pivot.
    """

    def __init__(self, *draws: float):
        self.draws = list(draws)

    def random(self) -> float:
        if len(self.draws) > 1:
            return self.draws.pop(0)
        return self.draws[0]

    def randint(self, a: int, b: int) -> int:
        return a


class CountingNode(RbstNode):
    """Node that counts allocations and releases, and can be told to fail an allocation."""
    __slots__ = ()
    allocated = 0
    released = 0
    # number of allocations left before one raises MemoryError; None never fails
    fail_after: Optional[int] = None

    def __init__(self, key):
        if CountingNode.fail_after is not None:
            if CountingNode.fail_after == 0:
                raise MemoryError
            CountingNode.fail_after -= 1
        super().__init__(key)
        CountingNode.allocated += 1

    def _release(self):
        super()._release()
        CountingNode.released += 1

    @classmethod
    def reset(cls):
        cls.allocated = 0
        cls.released = 0
        cls.fail_after = None


@dataclass(order=True)
class Tagged:
    """Key that compares on key only, so equal keys can still be told apart by tag."""
    key: int
    tag: int = field(compare=False)


def check_invariants(tree: GenericRandomizedBst) -> None:
    root = tree._root
    if root is None:
        assert len(tree) == 0
        return
    assert root._check_order()
    assert root._calculate_size() == len(tree)
    for node in root:
        assert node.size == 1 + sum(n.size for n in node.get_children())


def snapshot(tree: GenericRandomizedBst) -> list:
    """Pre order (key, size, has left, has right) of every node, which pins down the exact shape."""
    out = []
    stack = [tree._root] if tree._root is not None else []
    while stack:
        node = stack.pop()
        out.append((node.key, node.size, node.left is not None, node.right is not None))
        stack.extend(reversed(node.get_children()))
    return out
