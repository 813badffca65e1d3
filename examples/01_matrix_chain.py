import numpy as np

from einloop import einsum, linalg, plan_chain

# Three matrices whose association order matters by an order of magnitude.
rng = np.random.default_rng(0)
A = rng.normal(size=(10, 100))
B = rng.normal(size=(100, 5))
C = rng.normal(size=(5, 50))

plan = plan_chain([A.shape, B.shape, C.shape])
print("order:", plan.render(["A", "B", "C"]))
print("cost:", plan.cost, "naive:", plan.naive_cost)

product = linalg.matmul_chain(A, B, C)
print("product shape:", product.shape)

# The same contraction written as a single three-operand einsum.
direct = einsum("ij,jk,kl->il", A, B, C)
print("max abs difference:", float(np.abs(product - direct).max()))
