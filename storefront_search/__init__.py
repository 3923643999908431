"""
storefront_search — Text and image product search over a storefront catalog.

Relays text queries to the storefront's product search, and ranks the
catalog against an uploaded image using dominant-color histograms and
product title vocabulary.

Modules:
    engine          Main SearchEngine class
    histograms      Dominant-color extraction + histogram comparison
    lexical         Color-name rules and title vocabulary scoring
    scoring         Match score combination and ranking
    catalog         Storefront GraphQL client and product records
    cache           Time-bounded candidate corpus cache
    fetcher         Candidate image downloads
    moderation      Optional upload content moderation
    preprocessing   Image decoding, downsampling, thumbnails
    config          Environment / .env settings
    errors          Error taxonomy
    cli             Command-line front end
"""

from . import config  # loads .env before any module reads its tunables

__version__ = "1.0.0"
