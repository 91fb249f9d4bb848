import re

NEW_PR_LABEL = "new-pr 🌱"

SEMVER_PREFIX = "semver/"
SEMVER_PATCH_LABEL = "semver/patch"
SEMVER_MINOR_LABEL = "semver/minor"
SEMVER_MAJOR_LABEL = "semver/major"
SEMVER_NONE_LABEL = "semver/none"
SEMVER_LABELS = (
    SEMVER_MAJOR_LABEL,
    SEMVER_MINOR_LABEL,
    SEMVER_PATCH_LABEL,
    SEMVER_NONE_LABEL,
)

DOCUMENTATION_LABEL = "documentation :notebook:"

BACKPORT_LABEL = "backport"
BACKPORT_SKIP_LABEL = "backport-check-skip"
FAST_TRACK_LABEL = "fast-track 🚅"
EXCLUDE_LABELS = frozenset({BACKPORT_LABEL, BACKPORT_SKIP_LABEL, FAST_TRACK_LABEL})

EXCLUDE_PREFIXES = frozenset({"build", "ci", "test", "spec"})
BACKPORT_TITLE_RE = re.compile(r"backport", re.IGNORECASE)

API_REVIEW_REQUESTED_LABEL = "api-review/requested 🗳"
API_REVIEW_APPROVED_LABEL = "api-review/approved ✅"
API_REVIEW_DECLINED_LABEL = "api-review/declined ❌"
API_REVIEW_CHECK_NAME = "API Review"

DEPRECATION_REVIEW_REQUESTED_LABEL = "deprecation-review/requested 📝"
DEPRECATION_REVIEW_COMPLETE_LABEL = "deprecation-review/complete ✅"
DEPRECATION_REVIEW_CHECK_NAME = "Deprecation Review"

SEMVER_CHECK_NAME = "Semver Label Enforcement"

API_LGTM_RE = re.compile(r"API LGTM", re.IGNORECASE)
API_DECLINED_RE = re.compile(r"API DECLINED", re.IGNORECASE)
API_CHANGES_REQUESTED_RE = re.compile(r"API CHANGES REQUESTED", re.IGNORECASE)

DEPRECATION_CHECKLIST_HEADER = "## 🪦 Deprecation Checklist"
UNCHECKED_ITEM_RE = re.compile(r"^\s*- \[ \] ", re.MULTILINE)

DEPRECATION_CHECKLIST = f"""{DEPRECATION_CHECKLIST_HEADER}

This PR deprecates or removes public API. Check off every item below before it can merge.

### Deprecation
- [ ] The deprecation is documented in `docs/breaking-changes.md`
- [ ] The deprecated API emits a deprecation warning at runtime
- [ ] The API documentation marks the feature as deprecated

### Removal
- [ ] The API was deprecated for at least one major release before removal
- [ ] All references in the documentation and type definitions are removed
- [ ] Tests covering the removed API are deleted or updated
"""
