"""
Dump stored cart sessions from a sqlite database.

    python tools/session_dump.py [dev.db] [session_id]
"""
import json
import sqlite3
import sys

DB = sys.argv[1] if len(sys.argv) > 1 else "dev.db"
SESSION = sys.argv[2] if len(sys.argv) > 2 else None

conn = sqlite3.connect(DB)
cur = conn.cursor()

print("=== Session Entries ===")
if SESSION:
    cur.execute(
        "SELECT id, session_id, key, value, created_at, updated_at FROM session_entries WHERE session_id=?",
        (SESSION,),
    )
else:
    cur.execute(
        "SELECT id, session_id, key, value, created_at, updated_at FROM session_entries ORDER BY updated_at DESC LIMIT 20"
    )
for r in cur.fetchall():
    value = r[3]
    try:
        value = json.loads(value) if isinstance(value, str) else value
    except ValueError:
        pass
    summary = value
    if isinstance(value, dict) and "items" in value:
        summary = {
            "rows": len(value["items"]),
            "cart_total": value.get("cart_total"),
            "total_items": value.get("total_items"),
        }
    print(
        {
            "id": r[0],
            "session_id": r[1],
            "key": r[2],
            "value": summary,
            "created_at": r[4],
            "updated_at": r[5],
        }
    )
    if SESSION and isinstance(value, dict):
        for item in value.get("items", []):
            print("   ", item.get("rowid"), item.get("id"), item.get("qty"), item.get("price"))

conn.close()
