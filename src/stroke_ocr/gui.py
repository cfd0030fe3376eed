"""
GUI Application for the stroke digit recogniser
Draw digits, one gesture per digit, then classify every gesture box
"""

import queue
import threading
import tkinter as tk
from tkinter import ttk, messagebox

from .constants import (
    BOX_OUTLINE_COLOR,
    STROKE_COLOR,
    STROKE_WIDTH,
    RecognizerConfig,
)
from .display import Display
from .session import RecognitionSession


def _hex(color):
    return '#%02x%02x%02x' % color


class TkDisplay(Display):
    """
    Display backed by a tk.Text widget.

    Writes are queued and applied on the Tk thread, so the model loader
    thread can report progress too.
    """

    def __init__(self, root, text_widget, poll_ms=50):
        self.root = root
        self.text_widget = text_widget
        self.poll_ms = poll_ms
        self._pending = queue.Queue()
        self.root.after(self.poll_ms, self._drain)

    def set_status(self, text):
        self._pending.put(('set', text))

    def append(self, text):
        self._pending.put(('append', text))

    def report_error(self, title, message):
        """Queue an error dialog; it is shown from the Tk thread."""
        self._pending.put(('error', (title, message)))

    def _drain(self):
        while True:
            try:
                action, payload = self._pending.get_nowait()
            except queue.Empty:
                break
            if action == 'error':
                messagebox.showerror(*payload)
                continue
            if action == 'set':
                self.text_widget.delete('1.0', tk.END)
            self.text_widget.insert(tk.END, payload + '\n')
            self.text_widget.see(tk.END)
        self.root.after(self.poll_ms, self._drain)


class DrawingCanvas:
    """Canvas that forwards mouse drags to the recognition session"""

    def __init__(self, parent, session):
        self.session = session
        self.canvas = tk.Canvas(parent, width=session.config.width, height=session.config.height,
                                bg='black', cursor='pencil', highlightthickness=0)
        self.canvas.pack(pady=10)

        self.canvas.bind('<Button-1>', self.start_draw)
        self.canvas.bind('<B1-Motion>', self.draw_line)
        self.canvas.bind('<ButtonRelease-1>', self.end_draw)

        self.last_x = None
        self.last_y = None

    def start_draw(self, event):
        self.last_x = event.x
        self.last_y = event.y
        self.session.pointer_down(event.x, event.y)

    def draw_line(self, event):
        if not self.session.is_drawing:
            return
        if self.last_x is not None:
            self.canvas.create_line(self.last_x, self.last_y, event.x, event.y,
                                    width=STROKE_WIDTH, fill=_hex(STROKE_COLOR),
                                    capstyle=tk.ROUND, smooth=tk.TRUE)
        self.last_x = event.x
        self.last_y = event.y
        self.session.pointer_move(event.x, event.y)

    def end_draw(self, event):
        box = self.session.pointer_up()
        self.last_x = None
        self.last_y = None
        if box is not None:
            self.canvas.create_rectangle(box.left, box.top, box.right, box.bottom,
                                         outline=_hex(BOX_OUTLINE_COLOR), width=1)


class StrokeOCRApplication:
    """Main window: drawing canvas, classify button and output pane"""

    def __init__(self, root, config=None):
        self.root = root
        self.root.title("Stroke Digit Recognition")
        self.config = config or RecognizerConfig()
        self.create_widgets()

        self.display = TkDisplay(self.root, self.results_text)
        self.session = RecognitionSession(self.config, display=self.display)
        self.drawing_canvas = DrawingCanvas(self.canvas_frame, self.session)

        self.start_model_loading()

    def create_widgets(self):
        """Create and arrange GUI widgets"""
        main_frame = ttk.Frame(self.root, padding="10")
        main_frame.grid(row=0, column=0, sticky=(tk.W, tk.E, tk.N, tk.S))
        self.root.columnconfigure(0, weight=1)
        self.root.rowconfigure(0, weight=1)
        main_frame.columnconfigure(1, weight=1)

        title_label = ttk.Label(main_frame, text="Draw one digit per stroke",
                                font=('Arial', 14, 'bold'))
        title_label.grid(row=0, column=0, columnspan=2, pady=(0, 10))

        self.canvas_frame = ttk.LabelFrame(main_frame, text="Canvas", padding="10")
        self.canvas_frame.grid(row=1, column=0, sticky=(tk.N, tk.S), padx=(0, 10))

        ttk.Button(main_frame, text="Classify",
                   command=self.classify_writing).grid(row=2, column=0, pady=10)

        results_frame = ttk.LabelFrame(main_frame, text="Output", padding="10")
        results_frame.grid(row=1, column=1, rowspan=2, sticky=(tk.W, tk.E, tk.N, tk.S))

        self.results_text = tk.Text(results_frame, width=40, height=15, wrap=tk.WORD)
        scrollbar = ttk.Scrollbar(results_frame, orient=tk.VERTICAL, command=self.results_text.yview)
        self.results_text.configure(yscrollcommand=scrollbar.set)
        self.results_text.pack(side=tk.LEFT, fill=tk.BOTH, expand=True)
        scrollbar.pack(side=tk.RIGHT, fill=tk.Y)

    def start_model_loading(self):
        """Load the model off the Tk thread; classify stays gated until it is ready"""
        def worker():
            try:
                self.session.initialize_model()
            except Exception as e:
                message = f"Error loading model: {e}"
                print(message)
                self.display.report_error("Model Loading Error", message)

        threading.Thread(target=worker, name="model-loader", daemon=True).start()

    def classify_writing(self):
        """Classify every gesture drawn so far"""
        try:
            self.session.classify()
        except Exception as e:
            messagebox.showerror("Classification Error", f"Error classifying drawing: {e}")
            raise


def main(config=None):
    """Main function to run the GUI application"""
    root = tk.Tk()
    StrokeOCRApplication(root, config)
    root.mainloop()


if __name__ == "__main__":
    main()
