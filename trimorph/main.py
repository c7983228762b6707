import argparse

# Small patch: Ensure Kivy environment is setup before importing Kivy modules
# this patch is required to allow Kivy to run with command line arguments
# more robust will be from command line run [$env:KIVY_NO_ARGS='1';trimorph <args>]
import trimorph.services.kivy_setup

from kivy.core.window import Window
from kivy.uix.gridlayout import GridLayout
from kivy.uix.slider import Slider
from kivy.metrics import dp
from kivymd.app import MDApp
from kivymd.uix.boxlayout import MDBoxLayout
from kivymd.uix.label import MDLabel

from trimorph.controllers.main_controller import MainController
from trimorph.services.config import ViewerCfg
from trimorph.services.engine import Role
from trimorph.services.views import PicturePane


def parse_args(argv=None):
    p = argparse.ArgumentParser(prog="trimorph")

    # Note: defaults here are the source of truth for default values

    p.add_argument('project',
                   nargs='?',
                   default=None,
                   help='Project file (JSON); created on exit if it does not exist')

    p.add_argument('--source',
                   default=None,
                   help='Source image, overrides the project')

    p.add_argument('--target',
                   default=None,
                   help='Target image, overrides the project')

    p.add_argument('--quality',
                   choices=["low", "medium", "high"],
                   default="low",
                   help='Warp sampling density')

    p.add_argument('--phase',
                   dest='initial_phase',
                   type=float,
                   default=0.5,
                   help='Phase shown after opening the project')

    p.add_argument('--triangulator',
                   choices=["delaunay", "subdiv"],
                   default="delaunay",
                   help='Triangulation backend')

    p.add_argument('--warp-mode',
                   choices=["forward", "inverse"],
                   default="forward",
                   help='Push source pixels forward (default, may leave holes) or pull them')

    # mesh and anchor overlays are on unless switched off
    p.add_argument('--no-overlay',
                   dest='debug',
                   default=True,
                   action='store_false',
                   help='Hide mesh edges and anchors')

    p.add_argument('--no-autosave',
                   default=False,
                   action='store_true',
                   help='Do not write the project file on exit')

    p.add_argument('--log-level',
                   choices=["DEBUG", "INFO", "WARNING", "ERROR"],
                   default="INFO",
                   help='Logging verbosity')

    return p.parse_args(argv)


class MorphApp(MDApp):
    def __init__(self, **kwargs):
        super().__init__(**kwargs)

        # set window size
        viewer = ViewerCfg()
        Window.size = (viewer.width, viewer.height)

        self.controller = None
        self.panes = {
            Role.SOURCE: PicturePane(Role.SOURCE),
            Role.OUTPUT: PicturePane(Role.OUTPUT),
            Role.TARGET: PicturePane(Role.TARGET),
            Role.SOURCE_WARPED: PicturePane(Role.SOURCE_WARPED),
            Role.TARGET_WARPED: PicturePane(Role.TARGET_WARPED),
        }
        self.phase_slider = Slider(min=0.0, max=1.0, value=0.5)
        self.quality_slider = Slider(min=0, max=2, step=1, value=0)
        self.status_label = MDLabel(text="", halign="center")

    def build(self):
        self.title = "TriMorph"
        root = MDBoxLayout(orientation="vertical")

        # source | output | target on top, warped intermediates below
        grid = GridLayout(cols=3)
        grid.add_widget(self.panes[Role.SOURCE])
        grid.add_widget(self.panes[Role.OUTPUT])
        grid.add_widget(self.panes[Role.TARGET])
        grid.add_widget(self.panes[Role.SOURCE_WARPED])
        grid.add_widget(self.status_label)
        grid.add_widget(self.panes[Role.TARGET_WARPED])
        root.add_widget(grid)

        controls = MDBoxLayout(orientation="horizontal", size_hint_y=None, height=dp(48))
        controls.add_widget(MDLabel(text="Phase", size_hint_x=None, width=dp(60)))
        controls.add_widget(self.phase_slider)
        controls.add_widget(MDLabel(text="Quality", size_hint_x=None, width=dp(70)))
        controls.add_widget(self.quality_slider)
        root.add_widget(controls)
        return root

    def on_start(self):
        # Parse command line arguments; initialize main controller and pass arguments
        args = parse_args()
        self.controller = MainController(
            args,
            self.panes,
            phase_slider=self.phase_slider,
            quality_slider=self.quality_slider,
            status_label=self.status_label,
        )

    def on_stop(self):
        # shutdown main controller
        if self.controller:
            self.controller()
            self.controller = None


def run():
    MorphApp().run()


if __name__ == "__main__":
    run()
