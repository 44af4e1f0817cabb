# Services package.
#
# Each module exposes a focused set of async functions that encapsulate
# business logic and database access for one part of the domain:
#
#   user_service      — registration, login, self-update, profiles, follows
#   article_service   — article CRUD, slugs, listings, feed, tags
#   favorite_service  — favorite edges and favorite counts
#   comment_service   — comments scoped to an article
#
# All service functions accept an AsyncSession as their first argument
# so that the router layer controls the transaction boundary via the
# ``get_db`` dependency.  The caller's identity, when needed, is always
# an explicit ``Identity`` argument.
