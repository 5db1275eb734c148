"""
Route handlers for the Portal pages.

- `layout.load` runs before every page and decides whether to redirect.
- `page.ACTIONS` holds the named form actions of the landing page.
"""
