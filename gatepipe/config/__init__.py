# gatepipe/config package
# Runtime configuration loaded from runtime.yaml with environment overrides.
