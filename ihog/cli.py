import argparse, logging, sys, numpy as np
from pathlib import Path
from PIL import Image
from .config import load_config
from .constraints import ConsistencyState
from .dictionary import load_paired_dictionary
from .errors import IHOGError
from .invert import invert_hog
from .jsonlog import log

def _save_png(image, path):
    # one file per batch item: out.png, out_1.png, ...
    path = Path(path)
    for k in range(image.shape[3]):
        target = path if k == 0 else path.with_name(f"{path.stem}_{k}{path.suffix}")
        Image.fromarray((image[:, :, :, k] * 255).round().astype(np.uint8)).save(target)

def cmd_invert(args):
    cfg = load_config(args.config)
    if args.solver:
        cfg = cfg.model_copy(update={"solver": args.solver})
    pd = load_paired_dictionary(args.dictionary)
    feat = np.load(args.features).astype(float)
    if args.prev_in:
        prev = ConsistencyState.load(args.prev_in)
    else:
        prev = ConsistencyState.empty()
    if args.gam is not None or args.sig is not None:
        prev = ConsistencyState(a=prev.a,
                                gam=prev.gam if args.gam is None else args.gam,
                                sig=prev.sig if args.sig is None else args.sig)
    log("invert_start", features=args.features, shape=list(feat.shape), passes=prev.prevnum)
    image, prev = invert_hog(feat, pd, prev=prev, config=cfg)
    with open(args.out, "wb") as fh:
        np.save(fh, image)
    if args.png:
        _save_png(image, args.png)
    if args.prev_out:
        prev.save(args.prev_out)
    log("invert_done", out=args.out, shape=list(image.shape), passes=prev.prevnum)

def cmd_info(args):
    pd = load_paired_dictionary(args.dictionary)
    log("dictionary", path=args.dictionary, atoms=pd.n_atoms, ny=pd.ny, nx=pd.nx,
        sbin=pd.sbin, n_features=pd.n_features, lam=pd.lam)

def main(argv=None):
    ap = argparse.ArgumentParser("ihog")
    ap.add_argument("-v", "--verbose", action="store_true")
    sub = ap.add_subparsers(dest="cmd", required=True)

    ap_inv = sub.add_parser("invert", help="Invert a HOG grid saved as .npy (H x W x C [x K])")
    ap_inv.add_argument("--features", required=True)
    ap_inv.add_argument("--dictionary", required=True)
    ap_inv.add_argument("--out", required=True)
    ap_inv.add_argument("--png")
    ap_inv.add_argument("--config")
    ap_inv.add_argument("--solver", choices=["fista", "lasso"])
    ap_inv.add_argument("--prev-in")
    ap_inv.add_argument("--prev-out")
    ap_inv.add_argument("--gam", type=float)
    ap_inv.add_argument("--sig", type=float)
    ap_inv.set_defaults(func=cmd_invert)

    ap_info = sub.add_parser("info", help="Describe a paired dictionary")
    ap_info.add_argument("--dictionary", required=True)
    ap_info.set_defaults(func=cmd_info)

    args = ap.parse_args(argv)
    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.WARNING,
                        format="%(asctime)s %(name)s %(levelname)s %(message)s")
    try:
        args.func(args)
    except IHOGError as e:
        log("error", stream=sys.stderr, kind=type(e).__name__, message=str(e))
        return 1
    return 0

if __name__ == "__main__":
    raise SystemExit(main())
