"""dtrack_publisher: upload SBOMs to Dependency-Track and gate on the findings.

The pipeline uploads a BOM, optionally waits until the server has processed
it, fetches the project's findings and compares their counts against
configured thresholds to produce a SUCCESS / UNSTABLE / FAILURE verdict.
"""
from .policy.thresholds import ThresholdConfig, Verdict, evaluate  # noqa: F401
from .publish.pipeline import Publisher, PublishRequest, PublishResult, publish_bom  # noqa: F401
from .settings import PublisherSettings, load_api_key  # noqa: F401
