"""
Fire concurrent inserts at a single cart session and report what survived.

The ledger is last-write-wins per session, so with several workers the final
quantity is usually lower than workers * qty. Run against a live server:

    python tools/concurrent_cart.py --workers 8 --sku sku1 --qty 1
"""
import argparse
import concurrent.futures
import os

import requests

BASE = os.environ.get("CART_BASE", "http://127.0.0.1:8000")
COOKIE = os.environ.get("CART_COOKIE", "cart_session")


def open_session() -> str:
    r = requests.get(f"{BASE}/api/cart", timeout=10)
    r.raise_for_status()
    return r.json()["session_id"]


def insert_task(i, session_id, sku, qty):
    payload = {"id": sku, "qty": qty, "price": 1.0, "name": f"Item {sku}"}
    try:
        r = requests.post(
            f"{BASE}/api/cart/items", json=payload, cookies={COOKIE: session_id}, timeout=10
        )
        return (i, r.status_code, r.text)
    except requests.RequestException as e:
        return (i, "ERR", str(e))


def run_concurrent_inserts(workers, sku, qty):
    session_id = open_session()
    print(f"Running insert test: session={session_id} workers={workers}, sku={sku}, qty={qty}")
    with concurrent.futures.ThreadPoolExecutor(max_workers=workers) as ex:
        futures = [ex.submit(insert_task, i, session_id, sku, qty) for i in range(workers)]
        results = [f.result() for f in futures]
    for r in results:
        print(r)

    final = requests.get(f"{BASE}/api/cart", cookies={COOKIE: session_id}, timeout=10).json()
    print(f"Expected total_items if serialized: {workers * qty}")
    print(f"Actual total_items: {final['total_items']}")


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Concurrent insert tool for one cart session.")
    parser.add_argument("--sku", default="sku1")
    parser.add_argument("--qty", type=int, default=1)
    parser.add_argument("--workers", type=int, default=8)
    args = parser.parse_args()

    run_concurrent_inserts(args.workers, args.sku, args.qty)
