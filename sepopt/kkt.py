# sepopt/kkt.py
"""
Factorize once, solve many times: the linear system of the xt/zt update.

Minimizing the augmented Lagrangian over (xt, zt) subject to A xt = zt
gives

    [ P + S    A^T  ] [ xt ]   [ S x - q - w   ]
    [ A      -R^{-1}] [ nu ] = [ z - R^{-1} y  ]

with S = diag(sigma), R = diag(rho), and zt = z + R^{-1}(nu - y). The
coefficient matrix only depends on P, A, sigma and rho, so it is factored
once per solve. Eliminating nu = R (A xt - rhs2) gives the SPD reduced
system (P + S + A^T R A) xt = rhs1 + A^T R rhs2, which the normal-equation
backends factor instead.

Every backend exposes ``solve(rhs1, rhs2) -> (xt, nu)``.
"""
from __future__ import annotations
import os, multiprocessing, logging, time
_ncores = os.cpu_count() or multiprocessing.cpu_count() or 1

for k in ("OMP_NUM_THREADS", "OPENBLAS_NUM_THREADS", "MKL_NUM_THREADS",
          "BLIS_NUM_THREADS", "NUMEXPR_NUM_THREADS"):
    os.environ.setdefault(k, str(_ncores))

os.environ.setdefault("OMP_DYNAMIC", "FALSE")
os.environ.setdefault("MKL_DYNAMIC", "FALSE")
os.environ.setdefault("OMP_PROC_BIND", "true")
os.environ.setdefault("OMP_PLACES", "cores")

import numpy as np
import scipy.sparse as sp
import scipy.sparse.linalg as spla
import scipy.linalg as la

from .types import FactorizationError

try:
    from sksparse.cholmod import cholesky as cholmod_cholesky
except Exception:
    cholmod_cholesky = None

try:
    import mumps as _mumps_mod
    DMumpsContext = getattr(_mumps_mod, "DMumpsContext", None)
    _HAVE_MUMPS = DMumpsContext is not None
except Exception:
    DMumpsContext = None
    _HAVE_MUMPS = False

try:
    from mpi4py import MPI
    _MUMPS_COMM = MPI.COMM_SELF
except Exception:
    _MUMPS_COMM = None

try:
    from petsc4py import PETSc
    _HAVE_PETSC = True
except Exception:
    _HAVE_PETSC = False

logger = logging.getLogger(__name__)


def _csc(M):
    return M.tocsc().astype(np.float64) if sp.issparse(M) else sp.csc_matrix(M, dtype=np.float64)


def _check_finite(M, what):
    data = M.data if sp.issparse(M) else np.asarray(M)
    if not np.all(np.isfinite(data)):
        raise FactorizationError(f"{what} has non-finite entries")


def kkt_matrix(P, A, sigma, rho, format="csc"):
    """[[P + diag(sigma), A^T], [A, -diag(rho)^{-1}]]"""
    P = _csc(P); A = _csc(A)
    sigma = np.asarray(sigma, np.float64); rho = np.asarray(rho, np.float64)
    K11 = (P + sp.diags(sigma, format="csc")).tocsc()
    if A.shape[0] == 0:
        return K11.asformat(format)
    K22 = sp.diags(-1.0 / rho, format="csc")
    return sp.bmat([[K11, A.T],
                    [A,   K22]], format=format)


class KKTSolver:
    """Sparse LU (SuperLU) of the full quasi-definite KKT matrix."""
    def __init__(self, P, A, sigma, rho):
        KKT = kkt_matrix(P, A, sigma, rho)
        _check_finite(KKT, "KKT matrix")
        self.n, self.m = P.shape[0], A.shape[0]
        try:
            self._lu = spla.splu(KKT, permc_spec="COLAMD")
        except RuntimeError as e:
            raise FactorizationError(f"SuperLU failed on the KKT matrix: {e}") from e

    def solve(self, rhs1, rhs2):
        sol = self._lu.solve(np.concatenate([rhs1, rhs2]))
        return sol[:self.n], sol[self.n:]


class LDLKKTSolver:
    """
    Dense Bunch-Kaufman LDL^T of the KKT matrix (scipy.linalg.ldl).
    Meant for small problems; M = Pi^T L D L^T Pi with L = lu[perm].
    """
    def __init__(self, P, A, sigma, rho):
        M = kkt_matrix(P, A, sigma, rho).toarray()
        _check_finite(M, "KKT matrix")
        self.n, self.m = P.shape[0], A.shape[0]
        lu, d, perm = la.ldl(M, lower=True)
        self._L = np.ascontiguousarray(lu[perm])
        self._perm = perm
        # D is block diagonal with 1x1 and 2x2 blocks
        lu_d, piv = la.lu_factor(d, check_finite=False)
        tiny = np.finfo(np.float64).eps * max(1.0, np.abs(M).max())
        if np.any(np.abs(np.diag(lu_d)) <= tiny):
            raise FactorizationError("KKT matrix is singular (zero pivot in D)")
        self._D = (lu_d, piv)

    def solve(self, rhs1, rhs2):
        b = np.concatenate([rhs1, rhs2])
        y = la.solve_triangular(self._L, b[self._perm], lower=True, check_finite=False)
        t = la.lu_solve(self._D, y, check_finite=False)
        xp = la.solve_triangular(self._L.T, t, lower=False, check_finite=False)
        sol = np.empty_like(xp)
        sol[self._perm] = xp
        return sol[:self.n], sol[self.n:]


def _upper_coo(K):
    """Upper triangle of a symmetric matrix as sorted 1-based (row, col, val)."""
    U = sp.triu(K, format="coo")
    order = np.lexsort((U.col, U.row))
    rows = np.ascontiguousarray(U.row[order] + 1, dtype=np.int32)
    cols = np.ascontiguousarray(U.col[order] + 1, dtype=np.int32)
    vals = np.ascontiguousarray(U.data[order], dtype=np.float64)
    return rows, cols, vals


def _mumps_analyze_factor(ctx, rows, cols, vals, N):
    # newer pymumps splits pattern and values; older ones take both at once
    if hasattr(ctx, "set_centralized_assembled_rows_cols"):
        ctx.set_centralized_assembled_rows_cols(rows, cols)
        ctx.run(job=1)
        ctx.set_centralized_assembled_values(vals)
        ctx.run(job=2)
        return
    try:
        ctx.set_centralized_assembled(rows, cols, vals)
    except TypeError:
        ctx.set_centralized_assembled(rows, cols, vals, int(N))
    ctx.run(job=1)
    ctx.run(job=2)


class MumpsKKTSolver:
    """
    MUMPS symmetric-indefinite LDL^T (sym=2) of the KKT matrix. MUMPS reads
    one triangle in 1-based coordinate format; the factors live in the
    context until the solver is garbage collected.
    """
    def __init__(self, P, A, sigma, rho):
        if not _HAVE_MUMPS:
            raise RuntimeError("pymumps not available (conda-forge: pymumps mumps scotch metis mpi4py).")
        K = kkt_matrix(P, A, sigma, rho)
        _check_finite(K, "KKT matrix")
        self.n, self.m = P.shape[0], A.shape[0]
        N = self.n + self.m

        ctx = DMumpsContext(sym=2, comm=_MUMPS_COMM) if _MUMPS_COMM is not None else DMumpsContext(sym=2)
        if hasattr(ctx, "set_silent"):
            ctx.set_silent()
        if hasattr(ctx, "set_shape"):
            ctx.set_shape(int(N))
        try:
            _mumps_analyze_factor(ctx, *_upper_coo(K), N)
        except Exception as e:
            ctx.destroy()
            raise FactorizationError(f"MUMPS factorization failed: {e}") from e
        if not hasattr(ctx, "set_rhs"):
            ctx.destroy()
            raise RuntimeError("this pymumps build has no set_rhs; cannot solve with it")
        self.ctx = ctx

    def solve(self, rhs1, rhs2):
        # job=3 overwrites the rhs buffer with the solution
        sol = np.concatenate([rhs1, rhs2]).astype(np.float64)
        self.ctx.set_rhs(sol)
        self.ctx.run(job=3)
        return sol[:self.n].copy(), sol[self.n:].copy()

    def __del__(self):
        ctx = getattr(self, "ctx", None)
        if ctx is not None:
            ctx.destroy()


class PetscKKTSolver:
    """PETSc KSP 'preonly' with an LU preconditioner factored by MUMPS."""
    def __init__(self, P, A, sigma, rho):
        if not _HAVE_PETSC:
            raise RuntimeError("petsc4py not available; conda install -c conda-forge petsc petsc4py mumps-mpi mpi4py")
        K = kkt_matrix(P, A, sigma, rho, format="csr")
        _check_finite(K, "KKT matrix")
        self.n, N = P.shape[0], K.shape[0]
        csr = (K.indptr.astype(np.int32), K.indices.astype(np.int32), K.data.astype(np.float64))
        self._mat = PETSc.Mat().createAIJ(size=(N, N), csr=csr)
        self._mat.assemble()
        self._ksp = PETSc.KSP().create()
        self._ksp.setOperators(self._mat)
        self._ksp.setType("preonly")
        pc = self._ksp.getPC()
        pc.setType("lu")
        pc.setFactorSolverType("mumps")
        try:
            self._ksp.setFromOptions()
            self._ksp.setUp()
        except PETSc.Error as e:
            raise FactorizationError(f"PETSc LU failed on the KKT matrix: {e}") from e
        # work vectors reused by every solve
        self._b, self._x = self._mat.createVecs()

    def solve(self, rhs1, rhs2):
        self._b.setArray(np.concatenate([rhs1, rhs2]))
        self._ksp.solve(self._b, self._x)
        sol = self._x.getArray().copy()
        return sol[:self.n], sol[self.n:]


class _ReducedSolver:
    """Shared rhs / multiplier bookkeeping of the normal-equation backends."""
    def _setup(self, A, rho):
        self.A = _csc(A)
        self.rho = np.asarray(rho, np.float64)

    def solve(self, rhs1, rhs2):
        rhs = rhs1 + self.A.T @ (self.rho * rhs2) if self.A.shape[0] else rhs1
        xt = self._solve(rhs)
        nu = self.rho * (self.A @ xt - rhs2)
        return xt, nu


def _reduced_matrix(P, A, sigma, rho):
    """P + diag(sigma) + A^T diag(rho) A"""
    P = _csc(P); A = _csc(A)
    K = (P + sp.diags(np.asarray(sigma, np.float64), format="csc")).tocsc()
    if A.shape[0]:
        K = (K + A.T @ sp.diags(np.asarray(rho, np.float64)) @ A).tocsc()
    return K


class NormalEqSolver(_ReducedSolver):
    def __init__(self, P, A, sigma, rho):
        self._setup(A, rho)
        K = _reduced_matrix(P, A, sigma, rho)
        _check_finite(K, "reduced KKT matrix")
        try:
            self._solve = spla.factorized(K)
        except RuntimeError as e:
            raise FactorizationError(f"factorization of P + S + A^T R A failed: {e}") from e


class CholmodNormalSolver(_ReducedSolver):
    """
    Multithreaded SPD solve via CHOLMOD on K = P + S + A^T R A.
    """
    def __init__(self, P, A, sigma, rho,
                 cholmod_mode="supernodal",
                 ordering_method="best"):
        if cholmod_cholesky is None:
            raise RuntimeError("CHOLMOD unavailable (install scikit-sparse).")
        self._setup(A, rho)
        K = _reduced_matrix(P, A, sigma, rho)
        _check_finite(K, "reduced KKT matrix")
        try:
            self._fact = cholmod_cholesky(K, mode=cholmod_mode, ordering_method=ordering_method)
        except Exception as e:
            raise FactorizationError(f"CHOLMOD failed on P + S + A^T R A: {e}") from e

    def _solve(self, rhs):
        return self._fact(rhs)


class WoodburySolver(_ReducedSolver):
    """
    (H + A^T R A)^{-1} with H = P + S via SMW:
        H^{-1} - H^{-1} A^T (R^{-1} + A H^{-1} A^T)^{-1} A H^{-1}
    Use only when m << n.
    """
    def __init__(self, P, A, sigma, rho):
        P = _csc(P); A = _csc(A)
        m = A.shape[0]
        if m > 2000:
            raise ValueError(f"WoodburySolver: m={m} too large; use KKT/normal.")
        self._setup(A, rho)
        H = (P + sp.diags(np.asarray(sigma, np.float64), format="csc")).tocsc()
        _check_finite(H, "P + S")
        try:
            self._Hsolve = spla.factorized(H)
        except RuntimeError as e:
            raise FactorizationError(f"factorization of P + S failed: {e}") from e

        # X = H^{-1} A^T (n x m), Sm = R^{-1} + A X (m x m) SPD dense
        AT = A.T.toarray(order='F')
        self.X = self._Hsolve(AT) if m else np.zeros((P.shape[0], 0))
        self.X = self.X.reshape(P.shape[0], m)
        Sm = np.diag(1.0 / self.rho) + A @ self.X
        try:
            self._S_cho = la.cho_factor(Sm, lower=True, check_finite=False) if m else None
        except la.LinAlgError as e:
            raise FactorizationError(f"Woodbury capacitance matrix is not SPD: {e}") from e

    def _solve(self, rhs):
        y = self._Hsolve(rhs)                       # H^{-1} rhs
        if self._S_cho is None:
            return y
        t = self.A @ y                              # (m,)
        s = la.cho_solve(self._S_cho, t, check_finite=False)
        return y - self.X @ s


KKT_SOLVERS = {
    "kkt": KKTSolver,
    "ldl": LDLKKTSolver,
    "mumps": MumpsKKTSolver,
    "petsc": PetscKKTSolver,
    "normal": NormalEqSolver,
    "normal_cholmod": CholmodNormalSolver,
    "woodbury": WoodburySolver,
}


def _choose_kkt_solver(P, A, sigma, rho, mode):
    # ---- explicit modes first ----
    if mode != "auto":
        if mode not in KKT_SOLVERS:
            raise ValueError(f"unknown kkt_solver {mode!r}; choose from {['auto', *KKT_SOLVERS]}")
        return KKT_SOLVERS[mode](P, A, sigma, rho)

    # ---- auto policy ----
    m, n = A.shape[0], P.shape[0]
    if m == 0:
        if cholmod_cholesky is not None:
            return CholmodNormalSolver(P, A, sigma, rho)
        return NormalEqSolver(P, A, sigma, rho)
    if m <= 2000 and m <= n // 4:
        return WoodburySolver(P, A, sigma, rho)
    return KKTSolver(P, A, sigma, rho)


def factorize_kkt(params, settings):
    """
    Factor the coefficient matrix of the xt/zt update for ``params`` and
    the (resolved) ``settings``. Raises ``FactorizationError`` when the
    matrix cannot be factored.
    """
    t0 = time.perf_counter()
    kkt = _choose_kkt_solver(params.P, params.A, settings.sigma, settings.rho,
                             settings.kkt_solver)
    logger.debug("factorized with %s (n=%d, m=%d) in %.3fs",
                 type(kkt).__name__, params.n, params.m, time.perf_counter() - t0)
    return kkt


def solve_kkt(vars, kkt, params, settings):
    """
    Solve the KKT system for the current iterate and store xt, zt in
    ``vars``. Returns the multiplier nu.
    """
    rhs1 = settings.sigma * vars.x - params.q - vars.w
    rhs2 = vars.z - vars.y / settings.rho
    xt, nu = kkt.solve(rhs1, rhs2)
    vars.xt = np.asarray(xt, dtype=np.float64)
    vars.zt = vars.z + (nu - vars.y) / settings.rho
    return nu
