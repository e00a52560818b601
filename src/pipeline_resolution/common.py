"""Label keys, condition reasons and messages shared by resolvers and the reconciler."""

from __future__ import annotations

# Label on a resolution request naming the resolver type that owns it.
LABEL_KEY_RESOLVER_TYPE = "resolution.pipeline.dev/type"

# Annotation a resolver may set to describe the format of its content.
ANNOTATION_KEY_CONTENT_TYPE = "content-type"

REASON_RESOLUTION_TIMED_OUT = "ResolutionTimedOut"
REASON_RESOLUTION_FAILED = "ResolutionFailed"
REASON_RESOLVER_PARAMS_INVALID = "ResolverParamsInvalid"

MESSAGE_WAITING_FOR_RESOLVER = "waiting for resolver"
