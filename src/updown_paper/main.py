import argparse

from rich import print

from updown_paper.config import ConfigError, load_bot_config
from updown_paper.loop import build_bot


def main(argv=None):
    parser = argparse.ArgumentParser(description="Paper-trade rotating up/down markets alongside watched wallets")
    parser.add_argument("--config", default="config/default.yaml")
    parser.add_argument("--once", action="store_true", help="run a single tick and exit")
    parser.add_argument("--resume", action="store_true", help="continue from the saved ledger state")
    parser.add_argument("--seed", type=int, default=None)
    args = parser.parse_args(argv)

    try:
        cfg = load_bot_config(args.config)
    except (ConfigError, FileNotFoundError) as e:
        print(f"[red]CONFIG ERROR[/red] {e}")
        return 2
    if args.seed is not None:
        cfg.app.seed = args.seed

    bot = build_bot(cfg, resume=args.resume)
    if args.once:
        trades = bot.run_once()
        print(f"[bold]Tick[/bold] markets={len(bot.registry)} trades={len(trades)}")
        return 0
    bot.run_forever()
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
