from app.eproc.run import _cli_entrypoint

if __name__ == "__main__":
    # ``--serve`` also exposes the HTTP API; PORT defaults to 8080.
    raise SystemExit(_cli_entrypoint())
