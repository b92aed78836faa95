"""auth/ -- Remember-me cookie authentication package.

Layer rule: auth/ imports only stdlib + third-party libraries, plus core/
where a module says so. It does NOT import from api/.
api/ imports from auth/, not the other way around.
"""
