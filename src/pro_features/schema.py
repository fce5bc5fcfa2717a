from ninja import Schema

from pro_features.catalog import Visibility
from pro_features.evaluator import DecisionReason, DecisionStatus


class ProFeatureDecisionSchema(Schema):
    feature_key: str
    status: DecisionStatus
    reason: DecisionReason
    visibility: Visibility | None = None
    upsell_href: str | None = None
