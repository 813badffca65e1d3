import numpy as np

from einloop import Engine

INF = np.inf

# Edge weights of a small directed graph; INF marks a missing edge.
W = np.array(
    [
        [0.0, 3.0, INF, 7.0],
        [8.0, 0.0, 2.0, INF],
        [5.0, INF, 0.0, 1.0],
        [2.0, INF, INF, 0.0],
    ]
)

# One min-plus product relaxes every path by one more edge.
engine = Engine()
dist = W.copy()
for _ in range(len(W) - 1):
    step = np.full_like(W, INF)
    engine.einsum("ij,jk->min(@1, $1 + $2)->ik", dist, W, step)
    dist = step

print(dist)
print(engine.explain())
