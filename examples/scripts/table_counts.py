"""Sample pgrun script: print row estimates for user tables.

    pgrun postgres://localhost/postgres examples/scripts/table_counts.py --schema=public
"""

from __future__ import annotations

QUERY = """
    SELECT relname, n_live_tup
    FROM pg_stat_user_tables
    WHERE schemaname = $1
    ORDER BY relname
"""


async def main(ctx) -> None:
    schema = ctx.args.get("schema", "public")
    rows = await ctx.sql.fetch(QUERY, schema)
    for row in rows:
        print(f"{row['relname']:<40} {row['n_live_tup']:>12}")
    if ctx.args.get("uptime"):
        await ctx.shell("uptime")
