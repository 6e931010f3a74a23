"""auth/ -- Authentication and role handling for TourMarket.

Layer rule: auth/ imports only core/ plus stdlib and third-party libraries.
It does NOT import from api/ or catalog/.
api/ and catalog/ import from auth/, not the other way around.
"""
