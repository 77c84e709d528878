"""Entry point for the wotcalc CLI."""

import asyncio

from wotcalc.cli.arg_parser import parse_args


def main(argv: list[str] | None = None) -> None:
    """Entry point for the wotcalc CLI."""
    args = parse_args(argv)
    try:
        if args.command is None:
            print("Usage: wotcalc <command>")
            print("Commands: serve, describe, read, invoke, observe, detect")
            raise SystemExit(1)

        if args.command == "serve":
            from wotcalc.cli.serve import run_serve

            exit_code = asyncio.run(run_serve(
                port=args.port,
                config_path=args.config,
                verbose=args.verbose,
                log_dir=args.log_dir,
            ))
            raise SystemExit(exit_code)

        from wotcalc.cli.client_commands import (
            cmd_describe,
            cmd_detect,
            cmd_invoke,
            cmd_observe,
            cmd_read,
        )

        target = {"host": args.host, "port": args.port, "thing": args.thing}

        if args.command == "describe":
            exit_code = asyncio.run(cmd_describe(args.accept, **target))
        elif args.command == "read":
            exit_code = asyncio.run(cmd_read(args.name, args.accept, **target))
        elif args.command == "invoke":
            exit_code = asyncio.run(cmd_invoke(
                args.name, args.operand, args.content_type, args.accept, **target
            ))
        elif args.command == "observe":
            exit_code = asyncio.run(cmd_observe(args.name, args.accept, args.count, **target))
        elif args.command == "detect":
            exit_code = asyncio.run(cmd_detect(**target))
        else:
            print(f"Unknown command: {args.command}")
            exit_code = 1
        raise SystemExit(exit_code)
    except KeyboardInterrupt:
        # Handle Ctrl+C (server shutdown or observe stop)
        pass


if __name__ == "__main__":
    main()
