import http

import pytest
from gidgethub import BadRequest

from warden.github.api import API, RemoveResult
from warden.github.model import CheckRunOutput, CheckRunPayload
from warden.metric import label_mutation_counter


class _FakeGitHub:
    def __init__(self, *, delete_status=None, items=None):
        self.delete_status = delete_status
        self.items = items or []
        self.deleted = []
        self.posted = []
        self.patched = []
        self.iterated = []

    async def delete(self, url, url_vars=None):
        self.deleted.append((url, url_vars))
        if self.delete_status is not None:
            raise BadRequest(self.delete_status)

    async def post(self, url, url_vars=None, *, data):
        self.posted.append((url, data))
        return {"id": 77}

    async def patch(self, url, url_vars=None, *, data):
        self.patched.append((url, data))
        return {}

    async def getiter(self, url, url_vars=None, *, iterable_key="items", jwt=None):
        self.iterated.append((url, url_vars, iterable_key))
        for item in self.items:
            yield item


def removals(result):
    return label_mutation_counter.labels(operation="remove", result=result)._value.get()


@pytest.mark.asyncio
async def test_remove_label_reports_removed():
    gh = _FakeGitHub()
    api = API(gh, 1)

    result = await api.remove_label("org", "repo", 42, "new-pr 🌱")

    assert result == RemoveResult.removed
    url, url_vars = gh.deleted[0]
    assert url == "/repos/{owner}/{repo}/issues/{number}/labels/{name}"
    assert url_vars == {
        "owner": "org",
        "repo": "repo",
        "number": "42",
        "name": "new-pr 🌱",
    }
    assert api.call_count == 1


@pytest.mark.asyncio
async def test_remove_missing_label_is_not_found():
    gh = _FakeGitHub(delete_status=http.HTTPStatus.NOT_FOUND)
    api = API(gh, 1)
    before = removals("not_found")

    assert await api.remove_label("org", "repo", 42, "gone") == RemoveResult.not_found
    assert removals("not_found") == before + 1


@pytest.mark.asyncio
async def test_remove_label_other_errors_propagate():
    gh = _FakeGitHub(delete_status=http.HTTPStatus.FORBIDDEN)
    api = API(gh, 1)

    with pytest.raises(BadRequest):
        await api.remove_label("org", "repo", 42, "semver/minor")


@pytest.mark.asyncio
async def test_dry_run_does_not_mutate():
    gh = _FakeGitHub()
    api = API(gh, 1, dry_run=True)
    payload = CheckRunPayload(
        name="API Review", status="in_progress", output=CheckRunOutput(title="Pending")
    )

    await api.add_labels("org", "repo", 42, ["semver/minor"])
    assert await api.remove_label("org", "repo", 42, "new-pr 🌱") == RemoveResult.removed
    assert await api.create_check_run("org", "repo", "a" * 40, payload) is None
    await api.update_check_run("org", "repo", 5, payload)
    await api.create_comment("org", "repo", 42, "hello")

    assert gh.posted == gh.deleted == gh.patched == []


@pytest.mark.asyncio
async def test_add_labels_and_create_check_run_payloads():
    gh = _FakeGitHub()
    api = API(gh, 1)
    payload = CheckRunPayload(
        name="API Review",
        status="completed",
        conclusion="success",
        output=CheckRunOutput(title="Approved", summary="ok"),
    )

    await api.add_labels("org", "repo", 42, ["semver/minor"])
    check_run_id = await api.create_check_run("org", "repo", "a" * 40, payload)

    assert gh.posted[0] == (
        "/repos/org/repo/issues/42/labels",
        {"labels": ["semver/minor"]},
    )
    assert check_run_id == 77
    url, data = gh.posted[1]
    assert url == "/repos/org/repo/check-runs"
    assert data["head_sha"] == "a" * 40
    assert data["conclusion"] == "success"
    assert data["output"] == {"title": "Approved", "summary": "ok"}


@pytest.mark.asyncio
async def test_list_check_runs_filters_by_name():
    gh = _FakeGitHub(
        items=[
            {
                "id": 3,
                "name": "API Review",
                "head_sha": "a" * 40,
                "status": "in_progress",
                "output": {"title": "Pending", "summary": "s"},
            }
        ]
    )
    api = API(gh, 1)

    runs = await api.list_check_runs_for_ref(
        "org", "repo", "a" * 40, check_name="API Review"
    )

    assert runs[0].id == 3
    assert runs[0].title == "Pending"
    url, url_vars, iterable_key = gh.iterated[0]
    assert url.endswith("/check-runs{?check_name}")
    assert url_vars["check_name"] == "API Review"
    assert iterable_key == "check_runs"
