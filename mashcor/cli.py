from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path

import numpy as np

from .correlation import NullCorrelationResult, estimate_null_correlation, estimate_null_correlation_simple
from .covariances import CANONICAL_METHODS, cov_canonical
from .data import MashData, mash_set_data
from .errors import MashcorError

_DELIMITERS = {".csv": ",", ".tsv": "\t", ".tab": "\t"}


def _read_array(path: Path) -> np.ndarray:
    suffix = path.suffix.lower()
    if suffix == ".npy":
        return np.load(path)
    if suffix == ".npz":
        with np.load(path) as zf:
            if len(zf.files) != 1:
                raise ValueError(f"{path} must hold exactly one array; found {len(zf.files)}")
            return zf[zf.files[0]]
    return np.loadtxt(path, delimiter=_DELIMITERS.get(suffix))


def _read_matrix(path_str: str, name: str) -> np.ndarray:
    arr = np.atleast_2d(np.asarray(_read_array(Path(path_str)), dtype=float))
    if arr.ndim != 2:
        raise ValueError(f"{name} must be 2D; got shape {arr.shape}")
    return arr


def _read_ulist(path_str: str, R: int) -> dict[str, np.ndarray]:
    """Candidate matrices from a ``(K, R, R)`` .npy stack or an .npz of named ``(R, R)`` arrays."""
    path = Path(path_str)
    suffix = path.suffix.lower()
    if suffix == ".npy":
        stack = np.asarray(np.load(path), dtype=float)
        if stack.ndim != 3:
            raise ValueError(f"Ulist stack must be 3D (K, R, R); got shape {stack.shape}")
        ulist = {f"U_{k + 1}": U for k, U in enumerate(stack)}
    elif suffix == ".npz":
        with np.load(path) as zf:
            ulist = {key: np.asarray(zf[key], dtype=float) for key in zf.files}
    else:
        raise ValueError("Ulist file must be .npy or .npz")

    if not ulist:
        raise ValueError("Ulist cannot be empty")
    for key, U in ulist.items():
        if U.shape != (R, R):
            raise ValueError(f"Ulist[{key}] has shape {U.shape}; expected ({R}, {R})")
    return ulist


def _read_data(args: argparse.Namespace) -> MashData:
    return mash_set_data(_read_matrix(args.bhat, "Bhat"), _read_matrix(args.shat, "Shat"), alpha=args.alpha)


def _write_result(prefix: str, result: NullCorrelationResult) -> None:
    out = Path(prefix)
    out.parent.mkdir(parents=True, exist_ok=True)

    arrays = {
        "V": result.V,
        "loglik": result.loglik,
        "pi": result.mash_model.mixture_weights(),
    }
    if result.trace is not None:
        arrays["trace_V"] = np.stack([entry.V for entry in result.trace])
    np.savez_compressed(f"{out}.npz", **{k: np.asarray(v, dtype=float) for k, v in arrays.items()})

    meta = {
        "command": "estimate-null-corr",
        "n_conditions": int(result.V.shape[0]),
        "niter": int(result.niter),
        "status": result.status.value,
        "init_fallback": bool(result.init_fallback),
        "loglik": float(result.loglik[-1]),
    }
    Path(f"{out}.json").write_text(json.dumps(meta, indent=2, sort_keys=True), encoding="utf-8")


def _cmd_estimate_null_corr_simple(args: argparse.Namespace) -> int:
    vhat = estimate_null_correlation_simple(_read_data(args), z_thresh=args.z_thresh, est_cor=not args.est_cov)
    out = Path(args.out)
    out.parent.mkdir(parents=True, exist_ok=True)
    np.save(out, vhat)
    return 0


def _cmd_estimate_null_corr(args: argparse.Namespace) -> int:
    data = _read_data(args)
    if args.ulist is not None:
        ulist = _read_ulist(args.ulist, data.n_conditions)
    else:
        ulist = cov_canonical(data, methods=[m.strip() for m in args.cov_methods.split(",") if m.strip()])

    result = estimate_null_correlation(
        data,
        ulist,
        init=None if args.init is None else _read_matrix(args.init, "init"),
        max_iter=args.max_iter,
        tol=args.tol,
        est_cor=not args.est_cov,
        track_fit=args.track_fit,
        prior=args.prior,
        grid=None if args.grid is None else np.asarray(args.grid, dtype=float),
        optmethod=args.optmethod,
        nullweight=args.nullweight,
    )
    _write_result(args.out, result)
    return 0


def _add_data_args(p: argparse.ArgumentParser) -> None:
    p.add_argument("--bhat", required=True, help="Path to Bhat matrix (.npy/.npz/.csv/.tsv).")
    p.add_argument("--shat", required=True, help="Path to Shat matrix (.npy/.npz/.csv/.tsv).")
    p.add_argument("--alpha", type=float, default=0.0, help="Alpha scaling parameter (default: 0.0).")
    p.add_argument("--est-cov", action="store_true", help="Estimate covariance (default is correlation).")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="mashcor",
        description="Estimate the null correlation among conditions for multivariate shrinkage.",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Log progress to stderr.")
    sub = parser.add_subparsers(dest="command", required=True)

    ncs = sub.add_parser(
        "estimate-null-corr-simple",
        help="Estimate null correlation/covariance matrix with simple z-threshold rule.",
    )
    _add_data_args(ncs)
    ncs.add_argument("--out", required=True, help="Output .npy path for estimated matrix.")
    ncs.add_argument("--z-thresh", type=float, default=2.0, help="Null z-score threshold.")
    ncs.set_defaults(func=_cmd_estimate_null_corr_simple)

    em = sub.add_parser(
        "estimate-null-corr",
        help="Estimate null correlation/covariance matrix by iterative maximum likelihood.",
    )
    _add_data_args(em)
    em.add_argument("--out", required=True, help="Output prefix (writes <out>.npz and <out>.json).")
    em.add_argument("--ulist", help="Optional Ulist file (.npy KxRxR or .npz of named matrices).")
    em.add_argument(
        "--cov-methods",
        default=",".join(CANONICAL_METHODS),
        help="Canonical covariance methods when --ulist is not provided (comma-separated).",
    )
    em.add_argument("--grid", nargs="+", type=float, help="Explicit grid values, e.g. --grid 0.5 1.0")
    em.add_argument("--init", help="Optional initial V (.npy/.npz/.csv/.tsv).")
    em.add_argument("--max-iter", type=int, default=30, help="Maximum number of iterations (default: 30).")
    em.add_argument("--tol", type=float, default=1.0, help="Log-likelihood improvement tolerance (default: 1).")
    em.add_argument("--prior", default="nullbiased", choices=["nullbiased", "uniform"], help="Penalty on mixture weights.")
    em.add_argument(
        "--nullweight",
        type=float,
        default=10.0,
        help="Prior weight on the first component under --prior nullbiased (default: 10).",
    )
    em.add_argument(
        "--optmethod",
        default="slsqp",
        choices=["slsqp", "squarem", "em", "auto"],
        help="Optimizer for mixture weights (default: slsqp).",
    )
    em.add_argument("--track-fit", action="store_true", help="Save the V of every iteration as trace_V.")
    em.set_defaults(func=_cmd_estimate_null_corr)

    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    if args.verbose:
        logging.basicConfig(level=logging.INFO, format="%(asctime)s %(name)s %(levelname)s: %(message)s")
    try:
        return int(args.func(args))
    except (MashcorError, ValueError, OSError, RuntimeError) as exc:
        print(f"mashcor: error: {exc}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
