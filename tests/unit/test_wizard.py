"""Unit tests for the cluster creation wizard."""

import asyncio

import pytest

from cluster_lifecycle.exceptions import ApiError, WizardStateError
from cluster_lifecycle.metadata import ErrorMessages, MetadataReconciler
from cluster_lifecycle.models.node import NodeSelection
from cluster_lifecycle.providers import StaticHostInventory, StaticSiteTree
from cluster_lifecycle.wizard import (
    CREATED_MESSAGE,
    HOSTS_STEP,
    METADATA_STEP,
    METADATA_WARNING_MESSAGE,
    NAME_STEP,
    REVIEW_STEP,
    SITE_STEP,
    STEP_TITLES,
    WizardController,
)


@pytest.fixture
def wizard(backend, notifier):
    return WizardController(backend, notifier=notifier)


def walk_to_review(wizard, site, hosts):
    """Fill every step with valid input and stop on the review step."""
    wizard.set_name("c1")
    wizard.set_template("tpl-v1")
    wizard.next()
    wizard.select_site(site)
    wizard.next()
    wizard.select_host(hosts[0], True)
    wizard.next()
    wizard.next()
    assert wizard.step == REVIEW_STEP


def test_initial_state(wizard):
    assert wizard.step == NAME_STEP
    assert not wizard.finished
    assert not wizard.can_back
    assert not wizard.can_next
    assert [s.title for s in wizard.steps] == STEP_TITLES


def test_name_step_requires_versioned_template(wizard):
    wizard.set_name("  c1  ")
    assert wizard.draft.name == "c1"

    wizard.set_template("tpl")
    assert not wizard.is_valid(NAME_STEP)
    wizard.set_template("my-vm")
    assert not wizard.is_valid(NAME_STEP)

    wizard.choose_template("tpl", "1.2.0")
    assert wizard.draft.template == "tpl-v1.2.0"
    assert wizard.is_valid(NAME_STEP)


def test_empty_name_blocks_next(wizard):
    wizard.set_template("tpl-v1")

    with pytest.raises(WizardStateError) as exc_info:
        wizard.next()

    assert STEP_TITLES[NAME_STEP] in exc_info.value.message
    assert wizard.step == NAME_STEP


def test_site_step_requires_site(wizard, site):
    assert not wizard.is_valid(SITE_STEP)
    wizard.select_site(site)
    assert wizard.is_valid(SITE_STEP)
    assert wizard.draft.labels == {"region": "us-west", "site": "portland"}


def test_hosts_step_invalid_without_nodes(wizard, site, hosts):
    """Step 2 with zero selected nodes cannot advance."""
    wizard.set_name("c1")
    wizard.set_template("tpl-v1")
    wizard.next()
    wizard.select_site(site)
    wizard.next()

    assert wizard.step == HOSTS_STEP
    assert wizard.is_valid(HOSTS_STEP) is False
    assert wizard.can_next is False
    with pytest.raises(WizardStateError):
        wizard.next()


def test_select_then_deselect_leaves_no_node(wizard, hosts):
    wizard.select_host(hosts[0], True)
    wizard.select_host(hosts[0], False)

    assert wizard.draft.nodes == []
    assert not wizard.is_valid(HOSTS_STEP)


def test_changing_site_clears_hosts(wizard, site, other_site, hosts):
    wizard.select_site(site)
    wizard.select_host(hosts[0], True)

    wizard.select_site(site)
    assert len(wizard.draft.nodes) == 1

    wizard.select_site(other_site)
    assert wizard.draft.nodes == []
    assert wizard.draft.labels == {}


def test_metadata_step_blocks_on_invalid_labels(wizard, site):
    wizard.select_site(site)

    result = wizard.set_user_labels({"Env": "prod"})
    assert result.has_validation_error
    assert result.errors[0].message == ErrorMessages.NO_UPPER_CASE
    assert not wizard.is_valid(METADATA_STEP)

    result = wizard.set_user_labels({"env": "prod"})
    assert not result.has_validation_error
    assert wizard.is_valid(METADATA_STEP)
    assert wizard.draft.labels == {"region": "us-west", "site": "portland", "env": "prod"}


def test_user_key_colliding_with_inherited_key_is_rejected(wizard, site):
    wizard.select_site(site)

    result = wizard.set_user_labels([{"key": "region", "value": "us-east"}])
    assert result.errors[0].message == ErrorMessages.KEY_INHERITED

    # Repeating the inherited pair verbatim is not a conflict
    result = wizard.set_user_labels([{"key": "region", "value": "us-west"}])
    assert not result.has_validation_error
    assert result.user == []


def test_user_precedence_overrides_inherited_value(backend, site):
    wizard = WizardController(backend, reconciler=MetadataReconciler("user"))
    wizard.select_site(site)

    result = wizard.set_user_labels({"region": "us-east"})

    assert not result.has_validation_error
    assert wizard.draft.labels["region"] == "us-east"


def test_back_navigation(wizard, site):
    with pytest.raises(WizardStateError):
        wizard.back()

    wizard.set_name("c1")
    wizard.set_template("tpl-v1")
    wizard.next()
    wizard.select_site(site)
    wizard.next()

    assert wizard.back() == SITE_STEP
    assert wizard.back() == NAME_STEP
    assert wizard.draft.selected_site == site


def test_next_on_last_step_is_refused(wizard, site, hosts):
    walk_to_review(wizard, site, hosts)

    assert not wizard.can_next
    assert wizard.can_submit
    with pytest.raises(WizardStateError):
        wizard.next()


def test_cancel_discards_draft(wizard, site, hosts):
    walk_to_review(wizard, site, hosts)
    generation = wizard.generation

    wizard.cancel()

    assert wizard.finished
    assert wizard.generation == generation + 1
    assert wizard.draft.name == ""
    assert wizard.draft.nodes == []
    assert wizard.step == NAME_STEP
    with pytest.raises(WizardStateError):
        wizard.set_name("c2")


def test_preselected_host_is_selected_on_data_load(backend, hosts):
    wizard = WizardController(backend, preselected_host_id="host-b")
    table = StaticHostInventory(hosts)

    wizard.attach_host_table(table)

    assert wizard.draft.nodes == [NodeSelection(host_id="host-b", role="all")]


def test_host_table_events_feed_the_draft(wizard, hosts):
    table = StaticHostInventory(hosts)
    wizard.attach_host_table(table)

    table.toggle("host-a")
    table.toggle("uuid-c")
    table.toggle("host-a")

    assert [n.host_id for n in wizard.draft.nodes] == ["host-a", "uuid-c"]

    table.toggle("node-a", False)
    assert [n.host_id for n in wizard.draft.nodes] == ["uuid-c"]


def test_callbacks_after_cancel_are_dropped(wizard, site, hosts):
    table = StaticHostInventory(hosts)
    tree = StaticSiteTree([site])
    wizard.attach_host_table(table)
    wizard.attach_site_tree(tree)

    wizard.cancel()
    table.toggle("host-a")
    tree.pick("site-1")

    assert wizard.draft.nodes == []
    assert wizard.draft.selected_site is None


def test_submit_only_from_review_step(wizard):
    with pytest.raises(WizardStateError):
        asyncio.run(wizard.submit())


async def test_submit_creates_cluster_and_metadata(wizard, backend, notifier, site, hosts):
    walk_to_review(wizard, site, hosts)
    wizard.update_role("host-a", "control-plane")

    outcome = await wizard.submit()

    assert outcome.status == "success"
    assert outcome.message == CREATED_MESSAGE
    assert outcome.navigate
    assert backend.called("create_cluster") == [
        (
            {
                "name": "c1",
                "template": "tpl-v1",
                "labels": {"region": "us-west", "site": "portland"},
                "nodes": [{"id": "host-a", "role": "controlplane"}],
            },
        )
    ]
    assert backend.called("create_or_update_metadata") == [
        ([{"key": "region", "value": "us-west"}, {"key": "site", "value": "portland"}],)
    ]
    assert notifier.outcomes == [outcome]
    assert wizard.finished
    assert wizard.draft.name == ""


async def test_create_failure_keeps_draft_for_retry(wizard, backend, notifier, site, hosts):
    walk_to_review(wizard, site, hosts)
    backend.failures["create_cluster"] = ApiError("POST returned 500", "quota exceeded", 500)

    outcome = await wizard.submit()

    assert outcome.status == "failure"
    assert "quota exceeded" in outcome.message
    assert not outcome.navigate
    assert not wizard.finished
    assert wizard.step == REVIEW_STEP
    assert wizard.draft.name == "c1"
    assert backend.called("create_or_update_metadata") == []
    assert notifier.outcomes == [outcome]

    del backend.failures["create_cluster"]
    retry = await wizard.submit()
    assert retry.status == "success"
    assert len(backend.called("create_cluster")) == 2


async def test_metadata_failure_is_a_warning(wizard, backend, notifier, site, hosts):
    walk_to_review(wizard, site, hosts)
    backend.failures["create_or_update_metadata"] = ApiError("POST metadata returned 503")

    outcome = await wizard.submit()

    assert outcome.status == "warning"
    assert outcome.message == METADATA_WARNING_MESSAGE
    assert outcome.navigate
    assert wizard.finished
    assert notifier.outcomes == [outcome]


async def test_response_after_cancel_is_discarded(wizard, backend, notifier, site, hosts):
    walk_to_review(wizard, site, hosts)
    backend.gates["create_cluster"] = asyncio.Event()

    task = asyncio.create_task(wizard.submit())
    await asyncio.sleep(0)
    assert not wizard.can_submit
    with pytest.raises(WizardStateError):
        await wizard.submit()

    wizard.cancel()
    backend.gates["create_cluster"].set()
    outcome = await task

    assert outcome.status == "noop"
    assert notifier.outcomes == []
    assert backend.called("create_or_update_metadata") == []
