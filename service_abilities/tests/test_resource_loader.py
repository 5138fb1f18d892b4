"""
Unit tests for the resource loader.
"""

import pytest
from unittest.mock import MagicMock, patch

from service_abilities.app.ability import Ability
from service_abilities.app.persistence.memory import InMemoryPersistence
from service_abilities.app.resources.loader import (
    ResourceLoader, ResourceRequest, SkipConfig, controller_path, pluralize, singularize
)
from shared.config import AbilityConfig
from shared.errors import AccessDenied, ImplementationRemoved
from shared.test_helpers import Category, Project


class EngineProject(Project):
    """Project model living in a namespace."""


class SubProject(Project):
    """Project model with a compound name."""


class Section:
    """Model without persistence support."""


class Dashboard:
    """Namespaced model addressed by path."""


class TestNaming:
    """Test cases for controller name handling."""

    def test_controller_path(self):
        assert controller_path("projects") == ["projects"]
        assert controller_path("admin/projects") == ["admin", "projects"]
        assert controller_path("Admin::ProjectsController") == ["admin", "projects"]
        assert controller_path("MyEngine::SubProjectsController") == ["my_engine", "sub_projects"]

    def test_inflection(self):
        assert singularize("projects") == "project"
        assert singularize("categories") == "category"
        assert singularize("boxes") == "box"
        assert pluralize("category") == "categories"
        assert pluralize("project") == "projects"
        assert pluralize("box") == "boxes"


class TestResourceLoader:
    """Test cases for ResourceLoader."""

    @pytest.fixture
    def ability(self):
        """Create Ability instance."""
        return Ability(config=AbilityConfig(log_decisions=False))

    @pytest.fixture
    def persistence(self):
        """Create InMemoryPersistence instance."""
        return InMemoryPersistence()

    @pytest.fixture
    def resource_types(self):
        return {
            "project": Project,
            "category": Category,
            "section": Section,
            "admin/dashboard": Dashboard,
            "my_engine/project": EngineProject,
        }

    @pytest.fixture
    def make_request(self, ability):
        def _make(action, controller="projects", **params):
            return ResourceRequest(controller=controller, action=action, ability=ability, params=params)
        return _make

    @pytest.fixture
    def make_loader(self, persistence, resource_types):
        def _make(request, resource_name=None, /, **options):
            return ResourceLoader(
                request, resource_name,
                persistence=persistence,
                resource_types=resource_types,
                **options
            )
        return _make

    # Loading members

    def test_loads_resource_by_id(self, make_request, make_loader, persistence):
        project = persistence.create(Project)
        request = make_request("show", id=project.id)

        make_loader(request).load_resource()

        assert request.state["project"] is project

    def test_keeps_already_loaded_resource(self, make_request, make_loader):
        request = make_request("show", id="123")
        request.state["project"] = "some_project"

        make_loader(request).load_resource()

        assert request.state["project"] == "some_project"

    @pytest.mark.parametrize("controller", ["admin/projects", "Admin::ProjectsController"])
    def test_loads_resource_for_namespaced_controller(self, make_request, make_loader, persistence,
                                                      controller):
        project = persistence.create(Project)
        request = make_request("show", controller=controller, id=project.id)

        make_loader(request).load_resource()

        assert request.state["project"] is project

    def test_prefers_namespaced_resource_type(self, make_request, make_loader, persistence):
        project = persistence.create(EngineProject)
        request = make_request("show", controller="MyEngine::ProjectsController", id=project.id)

        make_loader(request).load_resource()

        assert request.state["project"] is project

    def test_creates_through_namespaced_params(self, make_request, make_loader):
        request = make_request("create", controller="MyEngine::ProjectsController",
                               my_engine_project={"name": "foobar"})

        make_loader(request).load_resource()

        assert isinstance(request.state["project"], EngineProject)
        assert request.state["project"].name == "foobar"

    def test_namespaced_resource_class_by_path(self, make_request, make_loader):
        request = make_request("index", controller="admin/dashboard")

        assert make_loader(request).resource_class is Dashboard

    # Building

    def test_builds_from_params(self, make_request, make_loader):
        request = make_request("create", project={"name": "foobar"})

        make_loader(request).load_resource()

        assert request.state["project"].name == "foobar"

    def test_builds_custom_class_from_class_params(self, make_request, make_loader):
        request = make_request("create", engine_project={"name": "foobar"})

        make_loader(request, class_=EngineProject).load_resource()

        assert request.state["project"].name == "foobar"

    def test_builds_compound_name_for_namespaced_controller(self, make_request, make_loader):
        request = make_request("create", controller="Admin::SubProjectsController",
                               sub_project={"name": "foobar"})

        make_loader(request, class_=SubProject).load_resource()

        assert request.state["sub_project"].name == "foobar"

    def test_builds_with_attributes_from_ability(self, ability, make_request, make_loader):
        ability.grant("create", Project, {"name": "from conditions"})
        request = make_request("new")

        make_loader(request).load_resource()

        assert request.state["project"].name == "from conditions"

    def test_params_override_ability_attributes(self, ability, make_request, make_loader):
        ability.grant("create", Project, {"name": "from conditions"})
        request = make_request("create", project={"name": "from params"})

        make_loader(request).load_resource()

        assert request.state["project"].name == "from params"

    def test_params_helper(self, make_request, make_loader):
        request = make_request("create")
        request.helpers["project_params"] = lambda: {"name": "foobar"}

        make_loader(request).load_resource()

        assert request.state["project"].name == "foobar"

    def test_custom_params_helper(self, make_request, make_loader):
        request = make_request("create")
        request.helpers["project_parameters"] = lambda: {"name": "foobar"}

        make_loader(request, params="project_parameters").load_resource()

        assert request.state["project"].name == "foobar"

    def test_custom_new_action_builds_even_with_id(self, make_request, make_loader):
        request = make_request("build", id="123")

        make_loader(request, new="build").load_resource()

        assert isinstance(request.state["project"], Project)

    # Collections

    def test_loads_collection_on_index(self, ability, make_request, make_loader, persistence):
        visible = persistence.create(Project, name="visible")
        persistence.create(Project, name="hidden")
        ability.grant("read", Project, {"name": "visible"})
        request = make_request("index")

        make_loader(request, "project").load_resource()

        assert request.state["projects"] == [visible]
        assert "project" not in request.state

    def test_no_collection_without_resource_type(self, make_request, make_loader):
        request = make_request("index", controller="custom_models")

        make_loader(request).load_resource()

        assert request.state == {}

    def test_no_collection_for_block_rules(self, ability, make_request, make_loader, persistence):
        persistence.create(Project)
        ability.grant("read", Project, block=lambda project: False)
        request = make_request("index")

        make_loader(request).load_resource()

        assert request.state == {}

    def test_custom_collection_action_ignores_id(self, make_request, make_loader):
        request = make_request("sort", id="123")

        make_loader(request, collection=["sort", "list"]).load_resource()

        assert request.state.get("project") is None

    def test_collection_on_custom_action_without_id(self, ability, make_request, make_loader,
                                                    persistence):
        project = persistence.create(Project)
        ability.grant("sort", Project)
        request = make_request("sort")

        make_loader(request).load_resource()

        assert request.state["projects"] == [project]
        assert request.state.get("project") is None

    def test_other_action_without_id_loads_no_member(self, make_request, make_loader):
        request = make_request("list")

        make_loader(request).load_resource()

        assert request.state.get("project") is None

    # Authorization

    def test_collection_action_authorizes_class(self, make_request, make_loader):
        request = make_request("index")
        request.state["project"] = "some_project"

        with pytest.raises(AccessDenied) as exc_info:
            make_loader(request).authorize_resource()

        assert exc_info.value.action == "index"
        assert exc_info.value.subject is Project

    def test_parent_authorized_with_show(self, make_request, make_loader):
        request = make_request("index")
        category = Category()
        request.state["category"] = category

        with pytest.raises(AccessDenied) as exc_info:
            make_loader(request, "category", parent=True).authorize_resource()

        assert exc_info.value.action == "show"
        assert exc_info.value.subject is category

    def test_authorizes_loaded_instance(self, make_request, make_loader):
        request = make_request("show", id="123")
        request.state["project"] = "some_project"

        with pytest.raises(AccessDenied) as exc_info:
            make_loader(request).authorize_resource()

        assert exc_info.value.subject == "some_project"

    def test_authorizes_class_when_not_loaded(self, make_request, make_loader):
        request = make_request("show", id="123")

        with pytest.raises(AccessDenied) as exc_info:
            make_loader(request).authorize_resource()

        assert exc_info.value.subject is Project

    def test_authorizes_name_when_class_disabled(self, make_request, make_loader):
        request = make_request("show", id="123")

        with pytest.raises(AccessDenied) as exc_info:
            make_loader(request, class_=False).authorize_resource()

        assert exc_info.value.subject == "project"

    def test_authorized_resource_passes(self, ability, make_request, make_loader, persistence):
        project = persistence.create(Project)
        ability.grant("read", Project)
        request = make_request("show", id=project.id)

        make_loader(request).load_and_authorize_resource()

        assert request.state["project"] is project

    def test_load_and_authorize_calls_both(self, make_request, make_loader):
        loader = make_loader(make_request("show", id="123"))

        with patch.object(ResourceLoader, "load_resource") as load, \
                patch.object(ResourceLoader, "authorize_resource") as authorize:
            loader.load_and_authorize_resource()

        load.assert_called_once_with()
        authorize.assert_called_once_with()

    def test_parent_only_authorized_for_show(self, make_request, make_loader, persistence):
        project = persistence.create(Project)
        request = make_request("new", project_id=project.id)

        with pytest.raises(AccessDenied) as exc_info:
            make_loader(request, "project", parent=True).load_and_authorize_resource()

        assert exc_info.value.action == "show"
        assert exc_info.value.subject is project

    def test_custom_instance_name(self, make_request, make_loader, persistence):
        project = persistence.create(Project)
        request = make_request("show", id=project.id)

        with pytest.raises(AccessDenied) as exc_info:
            make_loader(request, instance_name="custom_project").load_and_authorize_resource()

        assert exc_info.value.subject is project
        assert request.state["custom_project"] is project

    # Parent resources

    def test_parent_by_name(self, make_request, make_loader):
        request = make_request("index")

        assert make_loader(request, "category").parent is True
        assert make_loader(request, "project").parent is False
        assert make_loader(request, "project", parent=True).parent is True
        assert make_loader(request, "category", parent=False).parent is False

    def test_resource_class_by_name(self, make_request, make_loader):
        assert make_loader(make_request("index"), "section").resource_class is Section

    def test_resource_class_from_callable(self, make_request, make_loader):
        loader = make_loader(make_request("index"), class_=lambda request: ResourceLoader)

        assert loader.resource_class is ResourceLoader

    def test_loads_parent_through_id_param(self, make_request, make_loader, persistence):
        project = persistence.create(Project)
        request = make_request("index", controller="categories", project_id=project.id)

        make_loader(request, "project").load_resource()

        assert request.state["project"] is project

    def test_loads_through_parent_in_state(self, make_request, make_loader):
        category = MagicMock()
        category.projects.find.return_value = "some_project"
        request = make_request("show", id="123")
        request.state["category"] = category

        make_loader(request, through="category").load_resource()

        category.projects.find.assert_called_once_with("123")
        assert request.state["project"] == "some_project"

    def test_loads_through_custom_association(self, make_request, make_loader):
        category = MagicMock()
        category.custom_projects.find.return_value = "some_project"
        request = make_request("show", id="123")
        request.state["category"] = category

        make_loader(request, through="category", through_association="custom_projects").load_resource()

        assert request.state["project"] == "some_project"

    def test_loads_through_parent_helper(self, make_request, make_loader):
        category = MagicMock()
        category.projects.find.return_value = "some_project"
        request = make_request("show", id="123")
        request.helpers["category"] = lambda: category

        make_loader(request, through="category").load_resource()

        assert request.state["project"] == "some_project"

    def test_loads_through_plain_list(self, make_request, make_loader):
        first = Project(id=1)
        second = Project(id=2)
        request = make_request("show", id=2)
        request.state["category"] = Category(projects=[first, second])

        make_loader(request, through="category").load_resource()

        assert request.state["project"] is second

    def test_shallow_without_parent(self, make_request, make_loader, persistence):
        project = persistence.create(Project)
        request = make_request("show", id=project.id)

        make_loader(request, through="category", shallow=True).load_resource()

        assert request.state["project"] is project

    def test_missing_parent_denies(self, make_request, make_loader, persistence):
        project = persistence.create(Project)
        request = make_request("show", id=project.id)

        with pytest.raises(AccessDenied) as exc_info:
            make_loader(request, through="category").load_resource()

        assert exc_info.value.action == "show"
        assert exc_info.value.subject is Project
        assert request.state.get("project") is None

    def test_first_available_parent(self, make_request, make_loader):
        category = MagicMock()
        category.projects.find.return_value = "some_project"
        request = make_request("show", id="123")
        request.state["category"] = category

        make_loader(request, through=["category", "user"]).load_resource()

        assert request.state["project"] == "some_project"

    def test_singleton_find_without_id(self, make_request, make_loader):
        category = MagicMock()
        category.project = "some_project"
        request = make_request("show", id=None)
        request.state["category"] = category

        make_loader(request, through="category", singleton=True).load_resource()

        assert request.state["project"] == "some_project"

    def test_singleton_build_assigns_parent(self, make_request, make_loader):
        category = Category()
        request = make_request("create", project={"name": "foobar"})
        request.state["category"] = category

        make_loader(request, through="category", singleton=True).load_resource()

        assert request.state["project"].name == "foobar"
        assert request.state["project"].category is category

    def test_singleton_shallow_find(self, make_request, make_loader, persistence):
        project = persistence.create(Project)
        request = make_request("show", id=project.id)

        make_loader(request, through="category", singleton=True, shallow=True).load_resource()

        assert request.state["project"] is project

    def test_singleton_shallow_build(self, make_request, make_loader):
        request = make_request("create", project={"name": "foobar"})

        make_loader(request, through="category", singleton=True, shallow=True).load_resource()

        assert request.state["project"].name == "foobar"

    def test_build_appends_to_parent_collection(self, make_request, make_loader):
        category = Category()
        request = make_request("create", project={"name": "foobar"})
        request.state["category"] = category

        make_loader(request, through="category").load_resource()

        assert category.projects == [request.state["project"]]

    # Options

    def test_custom_class(self, make_request, make_loader, persistence):
        project = persistence.create(EngineProject)
        request = make_request("show", id=project.id)

        make_loader(request, class_=EngineProject).load_resource()

        assert request.state["project"] is project

    def test_custom_id_param(self, make_request, make_loader, persistence):
        project = persistence.create(Project)
        request = make_request("show", the_project=project.id)

        make_loader(request, id_param="the_project").load_resource()

        assert request.state["project"] is project

    def test_id_param_is_always_a_string(self, make_request, make_loader):
        request = make_request("show", the_project={"malicious": "I am"})

        assert isinstance(make_loader(request, id_param="the_project").id_param, str)

    def test_find_by_attribute(self, make_request, make_loader, persistence):
        project = persistence.create(Project, name="foo")
        request = make_request("show", id="foo")

        make_loader(request, find_by="name").load_resource()

        assert request.state["project"] is project

    @pytest.mark.parametrize("option", ["name", "resource", "nested"])
    def test_removed_options(self, make_request, make_loader, option):
        with pytest.raises(ImplementationRemoved):
            make_loader(make_request("show"), **{option: "foo"})

    def test_unknown_option(self, make_request, make_loader):
        with pytest.raises(TypeError):
            make_loader(make_request("show"), colour="blue")

    # Skipping

    def test_skip_only_actions(self, make_request, make_loader):
        skips = SkipConfig().skip("load", only=["index", "show"])

        def skipped(action, name=None):
            return make_loader(make_request(action), name, skip_config=skips).skip("load")

        assert skipped("index") is True
        assert skipped("index", "some_resource") is False
        assert skipped("show") is True
        assert skipped("other_action") is False

    def test_skip_only_one_action_on_resource(self, make_request, make_loader):
        skips = SkipConfig().skip("authorize", "project", only="index")

        def skipped(action, name=None):
            return make_loader(make_request(action), name, skip_config=skips).skip("authorize")

        assert skipped("index") is False
        assert skipped("index", "project") is True
        assert skipped("other_action", "project") is False

    def test_skip_except_actions(self, make_request, make_loader):
        skips = SkipConfig().skip("load", except_=["index", "show"])

        def skipped(action, name=None):
            return make_loader(make_request(action), name, skip_config=skips).skip("load")

        assert skipped("index") is False
        assert skipped("show") is False
        assert skipped("other_action") is True
        assert skipped("other_action", "some_resource") is False

    def test_skip_except_one_action_on_resource(self, make_request, make_loader):
        skips = SkipConfig().skip("authorize", "project", except_="index")

        def skipped(action, name=None):
            return make_loader(make_request(action), name, skip_config=skips).skip("authorize")

        assert skipped("index", "project") is False
        assert skipped("other_action") is False
        assert skipped("other_action", "project") is True

    def test_skip_load_and_authorize(self, make_request, make_loader):
        request = make_request("new")
        skips = SkipConfig().skip_load_and_authorize()

        make_loader(request, skip_config=skips).load_and_authorize_resource()

        assert request.state.get("project") is None

    def test_skip_rejects_unknown_behavior(self):
        with pytest.raises(ValueError):
            SkipConfig().skip("render")
