"""
Tiling Coordinates
==================
Lazy anchor positions along one image axis.
"""


class CoordinateIter:
    """
    Iterate ``position, position + stride, ...`` up to and including ``size``.

    The sequence stops once a value exceeds ``size``; a value equal to
    ``size`` is still produced. Build a new instance to restart.

    Args:
        position: First value, may be negative.
        stride: Distance between values, at least 1.
        size: Inclusive upper bound.

    Raises:
        ValueError: If ``stride`` is smaller than 1.
    """

    def __init__(self, position: int, stride: int, size: int):
        if stride < 1:
            raise ValueError(f"Tiling stride must be at least 1 pixel, got {stride}")
        self.position = position
        self.stride = stride
        self.size = size

    def __iter__(self):
        return self

    def __next__(self) -> int:
        if self.position > self.size:
            raise StopIteration

        result = self.position
        self.position += self.stride
        return result
