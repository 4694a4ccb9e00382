"""
Pages module: pages and their content revisions.

- A page is created together with its first revision
- Revisions are append-only; the newest one is the current draft
- Publishing points the page at one existing revision and copies nothing
"""
