import random
from abc import abstractmethod
from collections.abc import Iterable, Iterator
from typing import Any, Generic, Optional, Protocol, Type, TypeVar


class ComparableTreeDataType(Protocol):
    @abstractmethod
    def __lt__(self, other: Any, /) -> bool: ...


class RandomSource(Protocol):
    """Source of the coin flips and pivot choices the tree makes. random.Random satisfies it."""
    @abstractmethod
    def random(self) -> float: ...
    @abstractmethod
    def randint(self, a: int, b: int, /) -> int: ...


T = TypeVar('T', bound=ComparableTreeDataType)


class OutOfMemoryError(MemoryError):
    """A tree node could not be allocated. The insert that hit this leaves the tree as it was before the call."""


class RbstNode(Generic[T]):
    __slots__ = 'key', 'size', 'left', 'right'

    def __init__(self, key: T):
        self.key: T = key
        # number of nodes in the subtree rooted here, this one included
        self.size: int = 1
        # children are owned by exactly one parent; equal keys are routed right on descent
        self.left: 'None | RbstNode[T]' = None
        self.right: 'None | RbstNode[T]' = None

    def __str__(self):
        return f'{self.__class__.__name__}({self.key})'

    def __repr__(self):
        return str(self)

    def __len__(self):
        return self.size

    def __iter__(self) -> 'Iterator[RbstNode[T]]':
        """Yield the nodes of this subtree in order."""
        stack: 'list[RbstNode[T]]' = []
        node: 'RbstNode[T] | None' = self
        while stack or node is not None:
            if node is not None:
                stack.append(node)
                node = node.left
            else:
                node = stack.pop()
                yield node
                node = node.right

    @classmethod
    def _create(cls, key: T) -> 'RbstNode[T]':
        try:
            return cls(key)
        except MemoryError as e:
            raise OutOfMemoryError(f'Could not allocate a {cls.__name__}') from e

    def _release(self):
        """Drop the links to the children. Called once per node when it leaves the tree."""
        self.left = None
        self.right = None

    def _update_size(self):
        self.size = 1 + sum(n.size for n in self.get_children())

    def _calculate_size(self) -> int:
        """Count the nodes rooted here by walking them. Ignores the size field; only meant for testing."""
        return sum(1 for _ in self)

    def _calculate_height(self) -> int:
        """Same as height() but recursive, to cross check it in tests."""
        return 1 + max((n._calculate_height() for n in self.get_children()), default=0)

    def _check_order(self) -> bool:
        """True if an in order walk never steps down to a smaller key. Only meant for testing."""
        prev = None
        for node in self:
            if prev is not None and node.key < prev.key:
                return False
            prev = node
        return True

    def get_children(self) -> tuple['RbstNode[T]', ...]:
        """Get a tuple of this node's children, always in (left, right) order when both exist."""
        return tuple(i for i in [self.left, self.right] if i is not None)

    def height(self) -> int:
        """Number of nodes on the longest path from this node down to a leaf (1 for a leaf)."""
        depth = 0
        level: 'list[RbstNode[T]]' = [self]
        while level:
            depth += 1
            level = [n for node in level for n in node.get_children()]
        return depth

    def _flatten(self, key: T) -> tuple[list[T], int]:
        """In order walk of this subtree that merges key into the result.

        Return (keys, index), where keys is every key of the subtree plus key in ascending order and index is where key
        ended up. key goes in front of the first strictly greater key, so it lands after any keys equal to it.
        """
        keys: list[T] = []
        index = -1
        stack: 'list[RbstNode[T]]' = []
        node: 'RbstNode[T] | None' = self
        while stack or node is not None:
            if node is not None:
                stack.append(node)
                node = node.left
                continue
            node = stack.pop()
            if index < 0 and key < node.key:
                index = len(keys)
                keys.append(key)
            keys.append(node.key)
            node = node.right
        if index < 0:
            # key is greater than or equal to everything in the subtree
            index = len(keys)
            keys.append(key)
        return keys, index

    @classmethod
    def _build(cls, keys: list[T], first: int, last: int, rng: RandomSource) -> 'RbstNode[T] | None':
        """Build a subtree from keys[first:last + 1] (already sorted), picking every root uniformly at random."""
        if last < first:
            return None
        index = rng.randint(first, last)
        node = cls._create(keys[index])
        node.left = cls._build(keys, first, index - 1, rng)
        node.right = cls._build(keys, index + 1, last, rng)
        node._update_size()
        return node

    def _rebuild(self, new_node: 'RbstNode[T]', rng: RandomSource) -> tuple['RbstNode[T]', int]:
        """Build a replacement for this subtree that holds its keys plus new_node's key, with new_node as the root and
        everything below it shaped at random. This subtree itself is not modified, so if building runs out of memory
        nothing has changed yet.

        Return (root, work), where work counts the nodes flattened plus the nodes in the new subtree.
        """
        try:
            keys, index = self._flatten(new_node.key)
        except MemoryError as e:
            raise OutOfMemoryError(f'Could not flatten a subtree of {self.size} nodes') from e
        cls = self.__class__
        left = cls._build(keys, 0, index - 1, rng)
        right = cls._build(keys, index + 1, len(keys) - 1, rng)
        new_node.left = left
        new_node.right = right
        new_node._update_size()
        return new_node, 2 * len(keys) - 1

    def insert(self, new_node: 'RbstNode[T]', rng: RandomSource) -> tuple['RbstNode[T]', int]:
        """Insert a detached node into the tree rooted here.

        Walking down from this node, each subtree of size n is rebuilt with new_node as its root with probability
        1 / (n + 1); otherwise the walk continues left if the new key is smaller and right if not. If no rebuild happens
        the node is attached at the empty slot the walk ends at.

        returns (new_root, work), where new_root replaces self as the root (it is self unless the whole tree was
        rebuilt) and work is the number of nodes walked through, flattened and built.
        """
        path: 'list[RbstNode[T]]' = []
        node: 'RbstNode[T] | None' = self
        replacement = new_node
        replaced: 'RbstNode[T] | None' = None
        work = 0
        key = new_node.key
        while node is not None:
            work += 1
            if rng.random() < 1.0 / (node.size + 1):
                replacement, rebuild_work = node._rebuild(new_node, rng)
                work += rebuild_work
                replaced = node
                break
            path.append(node)
            node = node.left if key < node.key else node.right
        # nothing below can fail, so it is safe to start changing the tree
        for ancestor in path:
            ancestor.size += 1
        if path:
            parent = path[-1]
            if key < parent.key:
                parent.left = replacement
            else:
                parent.right = replacement
        if replaced is not None:
            replaced.teardown()
        return (path[0] if path else replacement), work

    def teardown(self) -> int:
        """Release every node of this subtree in post order (left, right, self). Return the number released."""
        # reversing a (self, left, right) walk that pushes left before right gives (left, right, self)
        order: 'list[RbstNode[T]]' = []
        stack: 'list[RbstNode[T]]' = [self]
        while stack:
            node = stack.pop()
            order.append(node)
            stack.extend(node.get_children())
        for node in reversed(order):
            node._release()
        return len(order)


class GenericRandomizedBst(Generic[T]):
    """Generic randomized binary search tree; construct with a node type. The random source can be injected to make
    the tree's shape reproducible.
    """
    __slots__ = ('_root', '_node_cls', '_rng')

    def __init__(self, tree_node_cls: Type[RbstNode], init: Optional[Iterable[T]] = None,
                 rng: Optional[RandomSource] = None):
        """Initialize an empty tree (with a node type), optionally with an iterable of keys to insert in order."""
        self._root: 'RbstNode[T] | None' = None
        self._node_cls = tree_node_cls
        self._rng: RandomSource = rng if rng is not None else random.Random()
        if init is not None:
            self.extend(init)

    def __len__(self):
        """Sizes are kept in the nodes, so this is constant time."""
        return len(self._root) if self._root is not None else 0

    def __iter__(self) -> Iterator[T]:
        if self._root is not None:
            for node in self._root:
                yield node.key

    def __str__(self):
        return f'{self.__class__.__name__}({str(list(self))})'

    def __repr__(self):
        return str(self)

    def __eq__(self, other):
        """Trees are equal if they hold the same keys in the same order, whatever their shape."""
        if not isinstance(other, GenericRandomizedBst):
            return False
        try:
            for selfi, otheri in zip(self, other, strict=True):
                if selfi != otheri:
                    return False
        except ValueError:
            # they are not the same length
            return False
        return True

    def is_empty(self) -> bool:
        return self._root is None

    def sorted(self) -> Iterable[T]:
        """Return an iterator over the keys in ascending order (equal keys in insertion order)."""
        return iter(self)

    def insert(self, key: T) -> int:
        """Insert a key, duplicates included. Return the number of nodes touched.

        Raises OutOfMemoryError if a node can't be allocated, in which case the tree is unchanged.
        """
        new_node = self._node_cls._create(key)
        if self._root is None:
            self._root = new_node
            return 1
        self._root, work = self._root.insert(new_node, self._rng)
        return work + 1

    def extend(self, keys: Iterable[T]) -> int:
        """Insert an iterable of keys in order. Returns the total number of nodes touched."""
        work = 0
        for key in keys:
            work += self.insert(key)
        return work

    def height(self) -> int:
        """Number of nodes on the longest root to leaf path; 0 for an empty tree."""
        return self._root.height() if self._root is not None else 0

    def destroy(self) -> int:
        """Release every node and leave the tree empty. Return the number of nodes released."""
        if self._root is None:
            return 0
        released = self._root.teardown()
        self._root = None
        return released

    @staticmethod
    def test(tree_node_cls: Type[RbstNode], iters=3, iters_per_iter=2000, print_time=True,
             rng: Optional[RandomSource] = None):
        """Run tests. Will throw an AssertionError if there is an error.

        The height bound is checked against the average over all iterations, so each iteration needs at least 2 keys.
        Pass a seeded rng to make a run reproducible.
        """
        import math
        import time
        if iters < 1 or iters_per_iter < 2:
            raise ValueError(f'Need at least 1 iteration of at least 2 keys, got {iters} of {iters_per_iter}')
        if rng is None:
            rng = random.Random()
        start_time = time.time()
        heights: list[int] = []
        for i in range(iters):
            # alternate between random keys and sorted keys, the worst case for an unbalanced tree
            if i % 2 == 0:
                keys = [rng.randint(-100000, 100000) for _ in range(iters_per_iter)]
            else:
                keys = list(range(iters_per_iter))
            tree: GenericRandomizedBst[int] = GenericRandomizedBst(tree_node_cls, rng=rng)
            # the tree should start out empty
            assert(len(tree) == 0)
            assert(tree.height() == 0)
            work = tree.extend(keys)
            assert(work >= len(keys))
            assert(len(tree) == len(keys))
            root = tree._root
            assert(root is not None)
            assert(root._calculate_size() == len(keys))
            assert(root._check_order())
            assert(list(tree.sorted()) == sorted(keys))
            for node in root:
                # the stored size of each node should match its children
                assert(node.size == 1 + sum(n.size for n in node.get_children()))
            height = tree.height()
            assert(height == root._calculate_height())
            heights.append(height)
            work += tree.destroy()
            assert(len(tree) == 0)
            assert(tree.destroy() == 0)
            if print_time:
                print(f'Inserted {len(keys)} {"random" if i % 2 == 0 else "sorted"} keys; height: {height}; '
                      f'nodes visited: {work}')
        # expected height is about 2.99 * log2(n) for large n and less for small n; a single tree can go over
        assert(sum(heights) / len(heights) <= 3 * math.log2(iters_per_iter))
        total_time = time.time() - start_time
        if print_time:
            print(f'Test successful with {iters} iterations and {iters_per_iter} steps per iteration')
            print(f'Total time of {total_time:.2f}s and average time of {(total_time / iters):.2f}s per iteration')


class RandomizedBst(GenericRandomizedBst):
    """Randomized binary search tree using RbstNode."""

    def __init__(self, *args, **kwargs):
        super().__init__(RbstNode, *args, **kwargs)

    @staticmethod
    def test(*args, **kwargs):
        super(RandomizedBst, RandomizedBst).test(RbstNode, *args, **kwargs)


if __name__ == '__main__':
    RandomizedBst.test()
