from imaging.fetcher import ImageFetcher, FetchBatch, SourceImage
from imaging.background import BackgroundRemover, BGRemovalResult
from imaging.postprocess import CropProcessor, CropResult
