# server.py — static file server over raw TCP sockets
# Modes: fixed thread pool with a bounded queue (default) or thread-per-connection.
# Connections are persistent: requests are served in a loop until the peer closes.

import argparse
import logging
import os
import queue
import socket
import sys
import threading
from dataclasses import dataclass
from typing import Optional

from .handler import handle_request
from .protocol import ProtocolError, error_response, read_request, send_response

logger = logging.getLogger(__name__)

DEFAULT_PORT = 8080
BIND_HOST = "0.0.0.0"
LISTEN_BACKLOG = 128
ACCEPT_POLL = 0.5  # seconds between stop checks while idle in accept()
LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'


# ----------------- Configuration -----------------
@dataclass(frozen=True)
class ServerConfig:
    port: int
    root: str
    mode: str = "pool"        # pool|threaded
    pool_size: int = 8
    queue_size: int = 64
    timeout: float = 30.0     # per-connection read/write deadline


def port_number(value: str) -> int:
    try:
        port = int(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"invalid port: {value!r}")
    if not 0 <= port <= 65535:
        raise argparse.ArgumentTypeError(f"port out of range: {port}")
    return port


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Serve the current directory over HTTP.")
    parser.add_argument("-p", "--port", type=port_number, default=DEFAULT_PORT)
    # anything else on the command line is not ours to judge
    args, _unknown = parser.parse_known_args(argv)
    return args


def load_config(argv=None, environ=None) -> ServerConfig:
    """CLI port, cwd root and env-tuned worker settings."""
    env = os.environ if environ is None else environ
    args = parse_args(argv)
    mode = env.get("THREADING_MODE", "pool").lower()
    if mode not in ("pool", "threaded"):
        raise SystemExit(f"Error: THREADING_MODE must be 'pool' or 'threaded', not {mode!r}")
    return ServerConfig(
        port=args.port,
        root=os.path.realpath(os.getcwd()),
        mode=mode,
        pool_size=int(env.get("POOL_SIZE", "8")),
        queue_size=int(env.get("QUEUE_SIZE", "64")),
        timeout=float(env.get("CONN_TIMEOUT", "30")),
    )


# ----------------- Connection loop -----------------
def handle_connection(conn: socket.socket, addr, config: ServerConfig) -> None:
    """Serve requests off one connection until it ends; always closes conn."""
    logger.debug("Connection from %s:%s", addr[0], addr[1])
    conn.settimeout(config.timeout)
    rfile = conn.makefile("rb")
    try:
        while True:
            try:
                request = read_request(rfile)
            except ProtocolError as e:
                logger.warning("Bad request from %s: %s", addr[0], e)
                send_response(conn, error_response(400, "Bad Request"), keep_alive=False)
                return
            if request is None:
                return

            keep_alive = request.keep_alive
            try:
                response = handle_request(config.root, request)
            except Exception:
                logger.exception("Failed to handle %s %s", request.method, request.target)
                response, keep_alive = error_response(500, "Internal Server Error"), False
            send_response(conn, response, keep_alive)
            if not keep_alive:
                return
    except socket.timeout:
        # Close silently on idle timeout
        pass
    except OSError as e:
        logger.debug("Connection %s:%s dropped: %s", addr[0], addr[1], e)
    except Exception:
        logger.exception("Unexpected error on connection %s:%s", addr[0], addr[1])
    finally:
        rfile.close()
        try:
            conn.shutdown(socket.SHUT_RDWR)
        except OSError:
            pass
        conn.close()
        logger.debug("Closed %s:%s", addr[0], addr[1])


# ----------------- Server loop -----------------
def open_listener(port: int, host: str = BIND_HOST) -> socket.socket:
    s = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    try:
        s.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        s.bind((host, port))
        s.listen(LISTEN_BACKLOG)
    except OSError:
        s.close()
        raise
    return s


def start_pool(config: ServerConfig) -> queue.Queue:
    """Spawn pool_size workers draining a bounded connection queue."""
    taskq = queue.Queue(maxsize=config.queue_size)

    def worker():
        while True:
            conn, addr = taskq.get()
            try:
                handle_connection(conn, addr, config)
            finally:
                taskq.task_done()

    for i in range(config.pool_size):
        threading.Thread(target=worker, name=f"Worker-{i+1}", daemon=True).start()
    return taskq


def serve(listener: socket.socket, config: ServerConfig,
          stop: Optional[threading.Event] = None) -> None:
    """Accept connections until stop is set, dispatching each to a worker."""
    stop = stop or threading.Event()
    taskq = start_pool(config) if config.mode == "pool" else None
    listener.settimeout(ACCEPT_POLL)

    while not stop.is_set():
        try:
            conn, addr = listener.accept()
        except socket.timeout:
            continue
        except OSError:
            if stop.is_set():
                break
            raise

        if taskq is not None:
            # blocks while the pool is saturated: backpressure on accept
            taskq.put((conn, addr))
        else:
            threading.Thread(target=handle_connection, args=(conn, addr, config), daemon=True).start()


def main(argv=None) -> int:
    logging.basicConfig(level=os.getenv("LOG_LEVEL", "INFO").upper(), format=LOG_FORMAT)
    config = load_config(argv)

    try:
        listener = open_listener(config.port)
    except OSError as e:
        logger.error("Cannot listen on port %d: %s", config.port, e)
        return 1

    logger.info("Server running on port %d", config.port)
    logger.info("Serving %s (mode=%s pool=%d queue=%d timeout=%.1fs)",
                config.root, config.mode, config.pool_size, config.queue_size, config.timeout)
    with listener:
        try:
            serve(listener, config)
        except KeyboardInterrupt:
            logger.info("Shutting down")
    return 0


if __name__ == "__main__":
    sys.exit(main())
