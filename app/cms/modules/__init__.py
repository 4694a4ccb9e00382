"""
CMS feature modules (pages, site settings).

Each module owns its models, service functions and blueprint; auth, role
checks, audit and the DB session come from `app.cms`.
"""
