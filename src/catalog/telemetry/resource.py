"""Service identity attached to every exported span and metric batch."""

from dataclasses import dataclass, field

from opentelemetry.sdk.resources import SERVICE_NAME, SERVICE_VERSION, Resource


@dataclass(frozen=True)
class ResourceDescriptor:
    """Static service metadata; set once at startup and never changed."""

    service_name: str
    service_version: str = "1.0.0"
    attributes: dict[str, str] = field(default_factory=dict)

    def to_resource(self) -> Resource:
        attrs: dict[str, str] = dict(self.attributes)
        attrs[SERVICE_NAME] = self.service_name
        attrs[SERVICE_VERSION] = self.service_version
        return Resource.create(attrs)
