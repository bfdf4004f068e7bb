"""Standalone smoke-test client — connects to the query server and sends sample requests."""

import socket
import sys

SAMPLE_REQUESTS = (
    "wind,45.0,-63.0",
    "wind_gust,45.0,-63.0",
    "ocean_current,45.0,-63.0",
    "sea_ice,45.0,-63.0",
    "wave_height,45.0,-63.0",
)


def send_request(sock: socket.socket, request: str) -> str:
    """Send one request line and return the server's response line."""
    sock.sendall((request + "\n").encode("ascii"))

    response = b""
    while b"\n" not in response:
        chunk = sock.recv(4096)
        if not chunk:
            break
        response += chunk
    return response.decode("ascii", errors="replace").strip()


def main():
    host = sys.argv[1] if len(sys.argv) > 1 else "127.0.0.1"
    port = int(sys.argv[2]) if len(sys.argv) > 2 else 52000

    print(f"Connecting to {host}:{port}...")
    sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    sock.settimeout(5.0)
    sock.connect((host, port))
    print("Connected!\n")

    try:
        for request in SAMPLE_REQUESTS:
            print(f"  Sent: {request}")
            print(f"  Recv: {send_request(sock, request)}")
            print()
    finally:
        sock.close()
        print("Connection closed.")


if __name__ == "__main__":
    main()
