"""stylecam: live webcam neural style transfer.

Two pretrained graphs do the work: a style-prediction model turns a style
image into a compact style representation, and a style-transfer model
combines each webcam frame with that representation. A fixed-interval driver
captures, stylizes and renders frames while the window has focus.
"""
