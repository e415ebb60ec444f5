import logging
from typing import Callable, Dict, Tuple, List, Optional

from ..plan import TestCategory, TestType, TestSpec
from .context import ProbeContext
from .params import FAMILY_CONFIGS, FamilyConfig

logger = logging.getLogger("edgeprobe.registry")

Probe = Callable[[ProbeContext, FamilyConfig], None]


class ProbeRegistry:
    """
    Routes a spec to its probe by (category, type).

    Probe modules register themselves with the ``probe`` decorator; importing
    ``edgeprobe.probes`` loads all built-in probes into ``default_registry``.
    """

    def __init__(self):
        self._registry: Dict[Tuple[TestCategory, TestType], Probe] = {}

    def register(self, category: TestCategory, test_type: TestType):
        def decorator(fn: Probe) -> Probe:
            key = (category, test_type)
            if key in self._registry:
                raise ValueError(f"Probe already registered for {category.value}/{test_type.value}")
            self._registry[key] = fn
            return fn
        return decorator

    def get_probe(self, category: TestCategory, test_type: TestType) -> Optional[Probe]:
        return self._registry.get((category, test_type))

    def list_probes(self) -> List[Tuple[TestCategory, TestType]]:
        return sorted(self._registry, key=lambda k: (k[0].value, k[1].value))

    def build_config(self, spec: TestSpec) -> FamilyConfig:
        """Resolves and validates the family configuration for ``spec``."""
        config_cls = FAMILY_CONFIGS[spec.category]
        return config_cls.from_spec(spec).validate(spec.type)

    def dispatch(self, spec: TestSpec, ctx: ProbeContext):
        """
        Runs the probe for ``spec``. Unknown (category, type) pairs are not
        errors: an Info event is emitted and nothing else happens.
        Raises SpecValidationError when the spec lacks a required field.
        """
        fn = self.get_probe(spec.category, spec.type)
        if fn is None:
            family = FAMILY_CONFIGS[spec.category].FAMILY
            ctx.info(f"Unsupported {family} type: {spec.type.value}")
            return
        config = self.build_config(spec)
        logger.debug("Dispatching %s/%s to %s", spec.category.value, spec.type.value, fn.__name__)
        fn(ctx, config)


default_registry = ProbeRegistry()
probe = default_registry.register
