from upcycle.projects import ProjectCatalog
from upcycle.results_view import collect_links, format_results, render_results_panel


def test_format_results_numbers_links():
    entries = ProjectCatalog().lookup("bottle")
    lines = format_results("bottle", entries)

    assert lines[0] == "DIY Projects for bottle:"
    assert "Plastic Bottle Projects" in lines[1]
    assert lines[2] == "    [1] Self-Watering Plant System - YouTube Tutorial"
    assert lines[3].strip() == "https://youtu.be/9HIC__5x404"
    assert lines[4] == "    [2] 25 Brilliant Bottle Recycling Ideas - Bored Panda"


def test_format_results_without_entries():
    lines = format_results("chair", [])
    assert lines == ["DIY Projects for chair:", "  No projects found for this item."]


def test_collect_links_in_display_order():
    links = collect_links(ProjectCatalog().lookup("cup"))
    assert [link.title for link in links] == [
        "DIY Pen Holder from Plastic Cups",
        "10 Creative Uses for Old Cups",
    ]


def test_render_results_panel_size():
    panel = render_results_panel("cup", ProjectCatalog().lookup("cup"), (320, 240))
    assert panel.shape == (240, 320, 3)
    assert panel.any()
