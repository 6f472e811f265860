"""Unit tests for training workspaces.

Builds small red, green and blue workspaces from synthetic textile images,
trains them and checks the exported runtime workspaces.
"""

import json
from pathlib import Path

import pytest

from vidi_client.domain import InvalidStateError, ResourceNotFoundError, ToolType, VendorInternalError

pytestmark = pytest.mark.unit


@pytest.fixture
def red_workspace(session, tmp_path: Path, textile_resources):
    """Red tool 'analyze' with all synthetic images added and processed."""
    workspace = session.create_training_workspace("textile", tmp_path / "ws" / "textile")
    workspace.add_stream("default")
    workspace.add_tool("default", "analyze", ToolType.RED)
    workspace.add_images("default", textile_resources.images.all_paths)
    workspace.process_database("default", "analyze")
    workspace.wait("default", "analyze")
    return workspace


class TestWorkspaceStructure:
    """Test workspace creation, streams, tools and the image database."""

    def test_Should_RaiseVendorError_When_DirectoryNotEmpty(self, session, tmp_path: Path):
        target = tmp_path / "busy"
        target.mkdir()
        (target / "file.txt").write_text("x")

        with pytest.raises(VendorInternalError, match="has to be empty"):
            session.create_training_workspace("textile", target)

    def test_Should_ReturnFileNames_When_ImagesAdded(self, session, tmp_path: Path, textile_resources):
        workspace = session.create_training_workspace("textile", tmp_path / "ws")
        workspace.add_stream("default")

        names = workspace.add_images("default", textile_resources.images.all_paths)

        assert names == ["000000.png", "000001.png", "000002.png", "000003.png", "bad000004.png", "bad000005.png"]
        assert session.outstanding == []

    def test_Should_RaiseVendorError_When_ImageNameDuplicated(self, session, tmp_path: Path, good_image_path: Path):
        workspace = session.create_training_workspace("textile", tmp_path / "ws")
        workspace.add_stream("default")
        workspace.add_images("default", [good_image_path])

        with pytest.raises(VendorInternalError, match="already in the database"):
            workspace.add_images("default", [good_image_path])

    def test_Should_OrderChain_When_ParentGiven(self, session, tmp_path: Path):
        # Arrange
        workspace = session.create_training_workspace("chain", tmp_path / "ws")
        workspace.add_stream("default")

        # Act
        workspace.add_tool("default", "analyze", "red")
        workspace.add_tool("default", "locate", "blue", parent="analyze")
        workspace.add_tool("default", "classify", ToolType.GREEN, parent="analyze")
        workspace.add_tool("default", "first", ToolType.RED)
        runtime_path = workspace.export_runtime(tmp_path / "chain.vrws")

        # Assert
        opened = session.open_workspace("chain", runtime_path)
        assert opened.list_tools() == ["first", "analyze", "classify", "locate"]

    def test_Should_RaiseValueError_When_ToolTypeUnknown(self, session, tmp_path: Path):
        workspace = session.create_training_workspace("textile", tmp_path / "ws")
        workspace.add_stream("default")

        with pytest.raises(ValueError):
            workspace.add_tool("default", "analyze", "purple")

    def test_Should_RaiseNotFound_When_StreamUnknown(self, session, tmp_path: Path):
        workspace = session.create_training_workspace("textile", tmp_path / "ws")

        with pytest.raises(ResourceNotFoundError):
            workspace.add_tool("default", "analyze", ToolType.RED)


class TestParameters:
    def test_Should_ReturnDefault_When_ParameterUntouched(self, red_workspace):
        assert red_workspace.get_parameter("default", "analyze", "sampling/feature_size") == "100x100"

    def test_Should_ReturnNewValue_When_ParameterSet(self, red_workspace):
        red_workspace.set_parameter("default", "analyze", "training/count_epochs", "10")

        assert red_workspace.get_parameter("default", "analyze", "training/count_epochs") == "10"

    def test_Should_RaiseVendorError_When_ParameterUnknown(self, red_workspace):
        with pytest.raises(VendorInternalError, match="unknown parameter"):
            red_workspace.set_parameter("default", "analyze", "color/hue", "1")


class TestRedTraining:
    """Test labelling, training and exporting a red tool."""

    def test_Should_RaiseInvalidState_When_LabelledBeforeProcessing(self, session, tmp_path: Path, good_image_path: Path):
        workspace = session.create_training_workspace("textile", tmp_path / "ws")
        workspace.add_stream("default")
        workspace.add_tool("default", "analyze", ToolType.RED)
        workspace.add_images("default", [good_image_path])

        with pytest.raises(InvalidStateError, match="has not been processed"):
            workspace.label_views("default", "analyze", "'bad'", "Bad")

    def test_Should_BeReady_When_Trained(self, red_workspace):
        # Arrange
        red_workspace.label_views("default", "analyze", "'bad'", "Bad")
        red_workspace.label_views("default", "analyze", "not labeled", "")
        progress = []

        # Act
        red_workspace.train("default", "analyze")
        status = red_workspace.wait_for_training("default", "analyze", poll_ms=0, on_progress=progress.append)

        # Assert
        assert status.ready
        assert not status.busy
        assert not status.needs_training
        assert status.progress == "training done"
        assert progress == [status]

    def test_Should_RaiseVendorError_When_NoGoodViews(self, red_workspace):
        red_workspace.label_views("default", "analyze", "", "Bad")
        red_workspace.train("default", "analyze")

        with pytest.raises(VendorInternalError, match="no good views"):
            red_workspace.wait_for_training("default", "analyze", poll_ms=0)

    def test_Should_RaiseVendorError_When_TrainingDeviceUnavailable(self, red_workspace):
        with pytest.raises(VendorInternalError, match="not available for training"):
            red_workspace.train("default", "analyze", devices="7")

    def test_Should_InspectExportedRuntime_When_TrainingDone(self, session, red_workspace, tmp_path: Path, textile_resources):
        # Arrange
        red_workspace.label_views("default", "analyze", "'bad'", "Bad")
        red_workspace.train("default", "analyze")
        red_workspace.wait_for_training("default", "analyze", poll_ms=0)

        # Act
        runtime_path = red_workspace.export_runtime(tmp_path / "textile.vrws")
        workspace = session.open_workspace("trained", runtime_path)
        with session.load_image(textile_resources.images.bad_paths[0]) as bad, session.load_image(textile_resources.images.good_paths[0]) as good:
            bad_result = workspace.inspect(bad, "default", "analyze", "s_bad")
            good_result = workspace.inspect(good, "default", "analyze", "s_good")

        # Assert
        assert bad_result.marking("analyze").views[0].label == "bad"
        assert good_result.marking("analyze").views[0].label == "good"

    def test_Should_EmbedImages_When_ArchiveExported(self, red_workspace, tmp_path: Path):
        path = red_workspace.export_archive(tmp_path / "textile.vwsa", include_images=True)

        document = json.loads(path.read_text(encoding="utf-8"))
        views = document["database"]["default"]
        assert len(views) == 6
        assert all("png" in view for view in views)

    def test_Should_OmitImages_When_ArchiveExportedWithoutImages(self, red_workspace, tmp_path: Path):
        path = red_workspace.export_archive(tmp_path / "textile.vwsa", include_images=False)

        document = json.loads(path.read_text(encoding="utf-8"))
        assert not any("png" in view for view in document["database"]["default"])


class TestPersistence:
    """Test save, autosave and close."""

    def test_Should_WriteWorkspaceFile_When_Saved(self, red_workspace):
        red_workspace.save()

        assert (red_workspace.path / "workspace.json").is_file()

    def test_Should_Autosave_When_ClosedWithUnsavedChanges(self, red_workspace):
        red_workspace.save()
        red_workspace.set_parameter("default", "analyze", "threshold", "0.05")

        red_workspace.close(discard_autosave=False)

        assert (red_workspace.path / "autosave.json").is_file()
        assert red_workspace.closed

    def test_Should_SkipAutosave_When_Discarded(self, session, red_workspace):
        red_workspace.close(discard_autosave=True)

        assert not (red_workspace.path / "autosave.json").exists()
        with pytest.raises(ResourceNotFoundError):
            session.training_workspace("textile")

    def test_Should_RaiseNotFound_When_UsedAfterClose(self, red_workspace):
        red_workspace.close(discard_autosave=True)

        with pytest.raises(ResourceNotFoundError):
            red_workspace.save()


class TestGreenTraining:
    def test_Should_ClassifyDefects_When_Trained(self, session, tmp_path: Path, textile_resources):
        # Arrange
        workspace = session.create_training_workspace("classes", tmp_path / "ws")
        workspace.add_stream("default")
        workspace.add_tool("default", "classify", ToolType.GREEN)
        workspace.add_images("default", textile_resources.images.all_paths)
        workspace.process_database("default", "classify")
        workspace.label_views("default", "classify", "'bad'", "bad")
        workspace.label_views("default", "classify", "not labeled", "good")

        # Act
        workspace.train("default", "classify")
        workspace.wait_for_training("default", "classify", poll_ms=0)
        runtime = session.open_workspace("classes", workspace.export_runtime(tmp_path / "classes.vrws"))
        with session.load_image(textile_resources.images.bad_paths[1]) as image:
            result = runtime.inspect(image, "default", "classify", "s1")

        # Assert
        assert result.marking("classify").views[0].label == "bad"


class TestBlueTraining:
    """Test features, node models and blue tool training."""

    @pytest.fixture
    def blue_workspace(self, session, tmp_path: Path, textile_resources):
        workspace = session.create_training_workspace("locate", tmp_path / "ws")
        workspace.add_stream("default")
        workspace.add_tool("default", "locate", ToolType.BLUE)
        workspace.add_images("default", textile_resources.images.good_paths)
        workspace.process_database("default", "locate")
        return workspace

    def test_Should_RaiseVendorError_When_FeatureSetOnRedTool(self, red_workspace):
        with pytest.raises(VendorInternalError, match="not a blue tool"):
            red_workspace.set_feature("default", "analyze", "000000.png", "0", 10, 10)

    def test_Should_RaiseVendorError_When_ViewUnknown(self, blue_workspace):
        with pytest.raises(VendorInternalError, match="unknown view"):
            blue_workspace.set_feature("default", "locate", "missing.png", "0", 10, 10)

    def test_Should_ExposeNodeParameters_When_NodeAdded(self, blue_workspace):
        # Arrange & Act
        blue_workspace.create_model("default", "locate", "fabric")
        blue_workspace.add_model_node("default", "locate", "fabric")
        blue_workspace.set_parameter("default", "locate", "models/fabric/nodes/0/names", "0")

        # Assert
        assert blue_workspace.get_parameter("default", "locate", "models/fabric/threshold") == "0.5"
        assert blue_workspace.get_parameter("default", "locate", "models/fabric/nodes/0/position") == "0,0"
        assert blue_workspace.get_parameter("default", "locate", "models/fabric/nodes/0/names") == "0"
        with pytest.raises(VendorInternalError):
            blue_workspace.get_parameter("default", "locate", "models/fabric/nodes/1/names")

    def test_Should_RaiseVendorError_When_ModelCreatedTwice(self, blue_workspace):
        blue_workspace.create_model("default", "locate", "fabric")

        with pytest.raises(VendorInternalError, match="already exists"):
            blue_workspace.create_model("default", "locate", "fabric")

    def test_Should_LocateFeature_When_Trained(self, session, blue_workspace, tmp_path: Path, good_image_path: Path):
        # Arrange
        for name in ("000000.png", "000001.png"):
            blue_workspace.set_feature("default", "locate", name, "knot", 64, 32)
        blue_workspace.create_model("default", "locate", "fabric")
        blue_workspace.add_model_node("default", "locate", "fabric")

        # Act
        blue_workspace.train("default", "locate")
        blue_workspace.wait_for_training("default", "locate", poll_ms=0)
        runtime = session.open_workspace("locate", blue_workspace.export_runtime(tmp_path / "locate.vrws"))
        with session.load_image(good_image_path) as image:
            result = runtime.inspect(image, "default", "locate", "s1")

        # Assert
        matches = result.marking("locate").views[0].matches
        assert [m.name for m in matches] == ["knot", "fabric"]
        assert matches[0].x == pytest.approx(64.0)
        assert matches[0].y == pytest.approx(32.0)

    def test_Should_RaiseVendorError_When_NoFeatures(self, blue_workspace):
        blue_workspace.train("default", "locate")

        with pytest.raises(VendorInternalError, match="no features"):
            blue_workspace.wait_for_training("default", "locate", poll_ms=0)
