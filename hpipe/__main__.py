import logging
import sys

import click

import hpipe
from hpipe._connection import DEFAULT_PORT
from hpipe._logging import LOG_LEVELS, configure_logging

logger = logging.getLogger("hpipe")


def parse_header(ctx, param, value):
    headers = []
    for item in value:
        name, sep, header_value = item.partition(":")
        if not sep or not name.strip():
            raise click.BadParameter(
                "expected 'Name: value', got {!r}".format(item), ctx=ctx, param=param
            )
        headers.append((name.strip(), header_value.strip()))
    return headers


def print_version(ctx, param, value):
    if not value or ctx.resilient_parsing:
        return
    click.echo("hpipe {}".format(hpipe.__version__))
    ctx.exit()


def on_begin(response):
    click.echo(
        "{} {} {}".format(
            response.http_version_tag.decode("ascii"),
            response.status,
            response.reason.decode("latin-1"),
        ),
        err=True,
    )


def on_data(response, data):
    response.context.write(data)


def on_complete(response):
    response.context.flush()


@click.command()
@click.argument("host")
@click.argument("paths", nargs=-1)
@click.option("--port", type=int, default=DEFAULT_PORT, show_default=True, help="Server port.")
@click.option("--method", default="GET", show_default=True, help="Request method.")
@click.option(
    "-H",
    "--header",
    "headers",
    multiple=True,
    callback=parse_header,
    help="Extra request header, as 'Name: value'. Repeatable.",
)
@click.option("-d", "--data", default=None, help="Request body, sent with every request.")
@click.option(
    "--timeout",
    type=float,
    default=1.0,
    show_default=True,
    help="How long each pump waits for data, in seconds.",
)
@click.option(
    "--log-level",
    type=click.Choice(list(LOG_LEVELS.keys())),
    default="warning",
    show_default=True,
    help="Log level.",
)
@click.option(
    "--version",
    is_flag=True,
    callback=print_version,
    expose_value=False,
    is_eager=True,
    help="Display the hpipe version and exit.",
)
def main(host, paths, port, method, headers, data, timeout, log_level):
    """Fetch PATHS (default: /) from HOST, pipelined on one connection.

    Status lines go to stderr and bodies to stdout.
    """
    configure_logging(log_level)

    conn = hpipe.Connection(host, port)
    conn.set_callbacks(on_begin, on_data, on_complete, click.get_binary_stream("stdout"))

    headers = [("User-Agent", hpipe.PRODUCT_ID)] + headers
    body = data.encode("utf-8") if data is not None else None
    try:
        for path in paths or ["/"]:
            conn.request(method, path, headers, body)
        while conn.outstanding():
            conn.pump(timeout)
    except hpipe.LocalProtocolError as exc:
        # a method, path or header we refuse to put on the wire
        raise click.UsageError(str(exc))
    except (hpipe.RemoteProtocolError, hpipe.TransportError) as exc:
        logger.error("%s", exc)
        sys.exit(1)
    finally:
        conn.close()


if __name__ == "__main__":
    main()
