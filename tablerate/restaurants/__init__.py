"""
Restaurant listings and ratings.

Responsibilities:
- Build filtered, sorted restaurant queries from listing options.
- Decode stored documents into Restaurant and Review records.
- Fold each new review into its restaurant's rating aggregate atomically.
- Serve listings once, as callbacks, or as a cancellable live stream.
"""
