"""
Sorting step producers.

Each producer takes the initial values and yields SortSteps; it sorts a
private list and never touches its input. A ``compare`` step precedes every
value comparison, and every run ends with exactly one ``complete``.
"""

from typing import Iterator, List, Sequence

from ..steps import SortStep, SortStepType


def _compare(i: int, j: int) -> SortStep:
    return SortStep(SortStepType.COMPARE, (i, j))


def _swap(a: List[int], i: int, j: int) -> SortStep:
    a[i], a[j] = a[j], a[i]
    return SortStep(SortStepType.SWAP, (i, j), (a[i], a[j]))


def _overwrite(a: List[int], i: int, value: int) -> SortStep:
    a[i] = value
    return SortStep(SortStepType.OVERWRITE, (i,), (value,))


def _sorted(i: int) -> SortStep:
    return SortStep(SortStepType.MARK_SORTED, (i,))


def _complete() -> SortStep:
    return SortStep(SortStepType.COMPLETE)


def bubble_sort(values: Sequence[int], **params) -> Iterator[SortStep]:
    a = list(values)
    n = len(a)
    for i in range(n - 1):
        swapped = False
        for j in range(n - 1 - i):
            yield _compare(j, j + 1)
            if a[j] > a[j + 1]:
                yield _swap(a, j, j + 1)
                swapped = True
        yield _sorted(n - 1 - i)
        if not swapped:
            break
    yield _complete()


def selection_sort(values: Sequence[int], **params) -> Iterator[SortStep]:
    a = list(values)
    n = len(a)
    for i in range(n - 1):
        smallest = i
        for j in range(i + 1, n):
            yield _compare(smallest, j)
            if a[j] < a[smallest]:
                smallest = j
        if smallest != i:
            yield _swap(a, i, smallest)
        yield _sorted(i)
    yield _complete()


def insertion_sort(values: Sequence[int], **params) -> Iterator[SortStep]:
    """Adjacent-exchange insertion: the key sinks left one swap at a time."""
    a = list(values)
    for i in range(1, len(a)):
        j = i
        while j > 0:
            yield _compare(j - 1, j)
            if a[j - 1] <= a[j]:
                break
            yield _swap(a, j - 1, j)
            j -= 1
    yield _complete()


def gnome_sort(values: Sequence[int], **params) -> Iterator[SortStep]:
    a = list(values)
    i = 0
    while i < len(a):
        if i == 0:
            i += 1
            continue
        yield _compare(i - 1, i)
        if a[i - 1] <= a[i]:
            i += 1
        else:
            yield _swap(a, i - 1, i)
            i -= 1
    yield _complete()


def quick_sort(values: Sequence[int], **params) -> Iterator[SortStep]:
    """Lomuto partition with the last element of each range as pivot."""
    a = list(values)

    def _sort(lo: int, hi: int) -> Iterator[SortStep]:
        if lo > hi:
            return
        if lo == hi:
            yield _sorted(lo)
            return
        yield SortStep(SortStepType.PARTITION, range=(lo, hi))
        yield SortStep(SortStepType.PIVOT_SELECT, (hi,))
        store = lo
        for j in range(lo, hi):
            yield _compare(j, hi)
            if a[j] < a[hi]:
                if store != j:
                    yield _swap(a, store, j)
                store += 1
        if store != hi:
            yield _swap(a, store, hi)
        yield _sorted(store)
        yield from _sort(lo, store - 1)
        yield from _sort(store + 1, hi)

    yield from _sort(0, len(a) - 1)
    yield _complete()


def merge_sort(values: Sequence[int], **params) -> Iterator[SortStep]:
    """Top-down merge sort writing merged runs back with ``overwrite``.

    The array is a permutation of the input at the end of every merge, not
    between the individual writes of one merge.
    """
    a = list(values)

    def _sort(lo: int, hi: int) -> Iterator[SortStep]:
        if lo >= hi:
            return
        mid = (lo + hi) // 2
        yield from _sort(lo, mid)
        yield from _sort(mid + 1, hi)
        yield SortStep(SortStepType.PARTITION, range=(lo, hi))

        left, right = a[lo : mid + 1], a[mid + 1 : hi + 1]
        i = j = 0
        k = lo
        while i < len(left) and j < len(right):
            yield _compare(lo + i, mid + 1 + j)
            if left[i] <= right[j]:
                yield _overwrite(a, k, left[i])
                i += 1
            else:
                yield _overwrite(a, k, right[j])
                j += 1
            k += 1
        for value in left[i:] + right[j:]:
            yield _overwrite(a, k, value)
            k += 1

    yield from _sort(0, len(a) - 1)
    yield _complete()


def heap_sort(values: Sequence[int], **params) -> Iterator[SortStep]:
    a = list(values)
    n = len(a)

    def _sift_down(root: int, size: int) -> Iterator[SortStep]:
        while True:
            largest = root
            for child in (2 * root + 1, 2 * root + 2):
                if child < size:
                    yield _compare(largest, child)
                    if a[child] > a[largest]:
                        largest = child
            if largest == root:
                return
            yield _swap(a, root, largest)
            root = largest

    for start in range(n // 2 - 1, -1, -1):
        yield from _sift_down(start, n)
    for end in range(n - 1, 0, -1):
        yield _swap(a, 0, end)
        yield _sorted(end)
        yield from _sift_down(0, end)
    if n:
        yield _sorted(0)
    yield _complete()


SORTING_PRODUCERS = {
    "bubble": bubble_sort,
    "selection": selection_sort,
    "insertion": insertion_sort,
    "gnome": gnome_sort,
    "quick": quick_sort,
    "merge": merge_sort,
    "heap": heap_sort,
}
